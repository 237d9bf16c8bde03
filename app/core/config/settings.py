# File: app/core/config/settings.py

import os
from pathlib import Path


class Settings:
    # --- Paths ---
    # app/core/config/settings.py -> app/core/config -> app/core -> app -> ROOT
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    STORAGE_LOCAL_PATH: Path = Path(os.getenv("STORAGE_LOCAL_PATH", str(DATA_DIR / "storage")))

    # --- Database ---
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "password")
    POSTGRES_SERVER: str = os.getenv("POSTGRES_SERVER", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "storage_db")

    @property
    def DATABASE_URL(self) -> str:
        # SQLite only when explicitly requested (test mode).
        if os.getenv("USE_SQLITE", "false").lower() == "true":
            return os.getenv("SQLITE_URL", "sqlite:///./test_storage.db")

        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # --- Storage Backend ---
    # "local" keeps blobs on disk, "s3" pushes them to an S3-compatible bucket
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local").strip().lower()
    STORAGE_HASH_CHUNK_SIZE: int = int(os.getenv("STORAGE_HASH_CHUNK_SIZE", str(64 * 1024)))
    # Objects younger than this are left alone by purge (uploads still committing metadata).
    STORAGE_PURGE_GRACE_SECONDS: int = int(os.getenv("STORAGE_PURGE_GRACE_SECONDS", "3600"))

    # --- S3-Compatible Bucket ---
    STORAGE_S3_BUCKET_NAME: str = os.getenv("STORAGE_S3_BUCKET_NAME", "")
    STORAGE_S3_BUCKET_REGION: str = os.getenv("STORAGE_S3_BUCKET_REGION", "")
    STORAGE_S3_BUCKET_ENDPOINT: str = os.getenv("STORAGE_S3_BUCKET_ENDPOINT", "")
    STORAGE_S3_BUCKET_ACCESS_KEY: str = os.getenv("STORAGE_S3_BUCKET_ACCESS_KEY", "")
    STORAGE_S3_BUCKET_SECRET_KEY: str = os.getenv("STORAGE_S3_BUCKET_SECRET_KEY", "")
    STORAGE_S3_BUCKET_CREATE: bool = os.getenv("STORAGE_S3_BUCKET_CREATE", "false").lower() == "true"


settings = Settings()
