# File: tests/conftest.py

import pytest
import os
import sys
import sqlalchemy
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy_utils import database_exists, create_database

# 1. Add project root to path
sys.path.append(os.getcwd())

# 2. Test mode: SQLite unless a database is configured explicitly
os.environ.setdefault("USE_SQLITE", "true")

# 3. Import Settings
from app.core.config.settings import settings

# 4. Create Test Engine
TEST_ENGINE = create_engine(settings.DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)


@pytest.fixture(scope="session", autouse=True)
def global_setup():
    """
    Runs once per test session.
    Ensures DB exists and all tables are registered.
    """
    if not database_exists(TEST_ENGINE.url):
        create_database(TEST_ENGINE.url)

    # Import all models to ensure they are registered
    from app.core.database.base import Base
    import app.core.jobs.models
    import app.features.storage.data.sql_models

    # Create tables once
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield


@pytest.fixture(scope="function", autouse=True)
def clean_db(global_setup):
    """
    Runs before EVERY test.
    Detects DB type and cleans tables appropriately.
    """
    from app.core.database.base import Base

    # 1. Safety Check: Ensure tables exist
    Base.metadata.create_all(bind=TEST_ENGINE)

    # 2. Clean Data
    with TEST_ENGINE.connect() as conn:
        trans = conn.begin()

        is_sqlite = "sqlite" in str(TEST_ENGINE.url)

        inspector = sqlalchemy.inspect(TEST_ENGINE)
        table_names = inspector.get_table_names()

        if table_names:
            if is_sqlite:
                # No TRUNCATE in SQLite; FK checks are disabled to delete in any order
                conn.execute(text("PRAGMA foreign_keys = OFF;"))
                for table in table_names:
                    conn.execute(text(f'DELETE FROM "{table}";'))
                conn.execute(text("PRAGMA foreign_keys = ON;"))
            else:
                conn.execute(text("SET session_replication_role = 'replica';"))
                for table in table_names:
                    conn.execute(text(f'TRUNCATE TABLE "{table}" CASCADE;'))
                conn.execute(text("SET session_replication_role = 'origin';"))

        trans.commit()

    yield


@pytest.fixture(scope="function")
def db_session():
    """
    Provides a session for the test to use.
    """
    connection = TEST_ENGINE.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def blob_root(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture
def backend(blob_root):
    from app.features.storage.data.local_fs import LocalStorageBackend

    store = LocalStorageBackend(root=blob_root, chunk_size=4)
    store.initialize()
    return store


@pytest.fixture
def repo():
    from app.features.storage.data.repository import PostgresStorageRepo

    return PostgresStorageRepo()


@pytest.fixture
def service(backend, repo):
    """A storage service over a private blob directory and the test database."""
    from app.features.storage.data.hasher import SHA256Hasher
    from app.features.storage.service.api import StorageService

    return StorageService(backend=backend, repo=repo, hasher=SHA256Hasher(chunk_size=4))
