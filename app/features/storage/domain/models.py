import base64
import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Callable, List, Optional, Union
from uuid import UUID

# Anything that can be turned into a byte stream: raw bytes, text, a readable
# file object, an iterable of byte chunks, or a callable returning one of those.
FileSource = Union[bytes, bytearray, str, BinaryIO, Any, Callable[[], Any]]


@dataclass
class FileInput:
    """
    A file handed to the storage feature for upload.
    `size_bytes` may be omitted, the observed size is used instead.
    """
    data: FileSource
    name: str
    mime_type: str
    size_bytes: Optional[int] = None
    description: str = ""
    source_url: str = ""
    parent_id: Optional[UUID] = None


@dataclass
class StorageFile:
    """
    One logical, deduplicated blob. `id` doubles as the backend object key.
    """
    id: UUID
    name: str
    mime_type: str
    size_bytes: int
    content_hash: str
    reference_count: int = 1
    download_count: int = 0
    description: str = ""
    source_url: str = ""
    parent_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Parent folders, root first. Only set when loaded.
    hierarchy: Optional[List["StorageFolder"]] = None

    @property
    def key(self) -> str:
        return str(self.id)

    @property
    def url(self) -> str:
        return f"/api/storage/{self.id}"

    @property
    def path(self) -> Optional[str]:
        if self.hierarchy is None:
            return None
        names = [folder.name for folder in self.hierarchy if not folder.is_root]
        return posixpath.join("/", *names, self.name)

    def serialize(self, with_parents: bool = False) -> dict:
        data = {
            "id": str(self.id),
            "url": self.url,
            "path": self.path,
            "name": self.name,
            "type": self.mime_type,
            "size": self.size_bytes,
            "hash": self.content_hash,
            "references": self.reference_count,
            "downloads": self.download_count,
            "description": self.description,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_parents and self.hierarchy is not None:
            data["hierarchy"] = [folder.serialize() for folder in self.hierarchy]
        return data


@dataclass
class StorageFolder:
    """
    A directory node. `files` and `folders` are None unless children were loaded.
    """
    id: UUID
    name: str
    description: str = ""
    is_root: bool = False
    parent_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    files: Optional[List[StorageFile]] = None
    folders: Optional[List["StorageFolder"]] = None
    # Ancestors, root first, excluding the folder itself. Only set when loaded.
    hierarchy: Optional[List["StorageFolder"]] = None

    TYPE = "inode/directory"

    @property
    def path(self) -> Optional[str]:
        if self.is_root:
            return "/"
        if self.hierarchy is None:
            return None
        names = [folder.name for folder in self.hierarchy if not folder.is_root]
        return posixpath.join("/", *names, self.name)

    @property
    def children(self) -> Optional[List[Union["StorageFolder", StorageFile]]]:
        if self.files is None and self.folders is None:
            return None
        return [*(self.folders or []), *(self.files or [])]

    @property
    def size_bytes(self) -> int:
        """Total size of the loaded children."""
        size = sum(f.size_bytes for f in self.files or [])
        size += sum(f.size_bytes for f in self.folders or [])
        return size

    def serialize(self, with_children: bool = False, with_parents: bool = False) -> dict:
        data = {
            "id": str(self.id),
            "url": None,
            "name": self.name,
            "path": self.path,
            "size": self.size_bytes,
            "type": self.TYPE,
            "description": self.description,
            "is_root": self.is_root,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_children and self.children is not None:
            data["children"] = [child.serialize() for child in self.children]
        if with_parents and self.hierarchy is not None:
            data["hierarchy"] = [folder.serialize() for folder in [*self.hierarchy, self]]
        return data


@dataclass(frozen=True)
class PutResult:
    """Commit confirmation returned by a backend after a successful write."""
    key: str
    size_bytes: int
    etag: Optional[str] = None


@dataclass(frozen=True)
class BackendObject:
    """An object as listed by a backend."""
    key: str
    size_bytes: int
    modified_at: Optional[datetime] = None


@dataclass
class PurgeResult:
    count: int = 0
    size_bytes: int = 0
    keys: List[str] = field(default_factory=list)


@dataclass
class DownloadResult:
    """
    Data and metadata of a downloaded file. `stream` is consumable once.
    """
    stream: BinaryIO
    mime_type: str
    size_bytes: int

    def data(self) -> bytes:
        try:
            return self.stream.read()
        finally:
            self.stream.close()

    def text(self, encoding: str = "utf-8") -> str:
        return self.data().decode(encoding)

    def base64url(self) -> str:
        encoded = base64.b64encode(self.data()).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"
