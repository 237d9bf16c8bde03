# File: app/core/common/enums.py

from enum import Enum, unique

@unique
class StorageBackendType(str, Enum):
    LOCAL = "local"
    S3 = "s3"
