import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, BigInteger, Text, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid
from app.core.database.base import Base

def utc_now():
    return datetime.now(timezone.utc)

class StorageFolderModel(Base):
    __tablename__ = "storage_folders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # TRUE for the root folder, NULL for every other one.
    # The unique constraint guarantees a single root (NULLs never collide).
    is_root = Column(Boolean, unique=True, nullable=True)

    parent_id = Column(Uuid(as_uuid=True), ForeignKey("storage_folders.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    parent = relationship("StorageFolderModel", remote_side=[id], back_populates="folders")
    folders = relationship("StorageFolderModel", back_populates="parent", order_by="StorageFolderModel.name")
    files = relationship("StorageFileModel", back_populates="parent", order_by="StorageFileModel.name")

class StorageFileModel(Base):
    __tablename__ = "storage_files"
    __table_args__ = (
        CheckConstraint("reference_count >= 0", name="ck_storage_files_reference_count"),
    )

    # Also the object key in the storage backend.
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    content_hash = Column(String(64), nullable=False, unique=True, index=True)
    reference_count = Column(Integer, nullable=False, default=1)
    download_count = Column(Integer, nullable=False, default=0)
    source_url = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")

    # NULL means owned by the root level.
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("storage_folders.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    parent = relationship("StorageFolderModel", back_populates="files")
