from app.core.common.enums import StorageBackendType
from app.core.config.settings import Settings, settings as default_settings
from ..domain.errors import BackendFailure
from ..domain.interfaces import IStorageBackend
from .local_fs import LocalStorageBackend


def create_storage_backend(config: Settings = default_settings) -> IStorageBackend:
    """
    Picks the blob backend from configuration (STORAGE_BACKEND).
    """
    try:
        backend_type = StorageBackendType(config.STORAGE_BACKEND)
    except ValueError:
        raise BackendFailure(f"Unknown storage backend: {config.STORAGE_BACKEND!r}")

    if backend_type == StorageBackendType.S3:
        # boto3 is only imported when the S3 backend is selected.
        from .s3_store import S3StorageBackend
        return S3StorageBackend(
            bucket=config.STORAGE_S3_BUCKET_NAME,
            region=config.STORAGE_S3_BUCKET_REGION,
            endpoint=config.STORAGE_S3_BUCKET_ENDPOINT,
            access_key_id=config.STORAGE_S3_BUCKET_ACCESS_KEY,
            secret_access_key=config.STORAGE_S3_BUCKET_SECRET_KEY,
            create_bucket=config.STORAGE_S3_BUCKET_CREATE,
        )

    return LocalStorageBackend(root=config.STORAGE_LOCAL_PATH)
