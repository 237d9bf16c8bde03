import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, JSON
from sqlalchemy.types import Uuid
from app.core.database.base import Base
from .types import JobType, JobStatus

def utc_now():
    return datetime.now(timezone.utc)

class JobModel(Base):
    __tablename__ = "jobs"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    
    job_type = Column(SQLEnum(JobType), nullable=False, index=True)
    status = Column(SQLEnum(JobStatus), default=JobStatus.PENDING)
    
    payload = Column(JSON, default=dict)     # Input parameters
    result_meta = Column(JSON, default=dict) # Outcome (counts, sizes)
    
    created_at = Column(DateTime(timezone=True), default=utc_now)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    
    error_message = Column(String, nullable=True)
