# File: app/core/database/connection.py

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from app.core.config.settings import settings

IS_SQLITE = "sqlite" in settings.DATABASE_URL

# check_same_thread=False is needed only for SQLite (Test Mode)
connect_args = {"check_same_thread": False} if IS_SQLITE else {}

engine = create_engine(
    settings.DATABASE_URL, 
    echo=False, 
    pool_pre_ping=True,
    connect_args=connect_args
)

if IS_SQLITE:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    """Dependency for obtaining a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
