from enum import Enum

class JobType(str, Enum):
    STORAGE_PURGE = "storage_purge"

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
