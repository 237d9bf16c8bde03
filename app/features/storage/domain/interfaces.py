from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, List, Optional
from uuid import UUID

from .models import FileSource, BackendObject, PutResult, StorageFile, StorageFolder


class IHasher(ABC):
    @abstractmethod
    def tap(self, data: FileSource) -> BinaryIO:
        """
        Wraps the input into a read-once stream that hashes every byte
        passing through it. The stream exposes `hexdigest()` once drained.
        """
        pass


class IStorageBackend(ABC):
    """
    Contract for the blob store. Bytes live under a key, nothing else.
    Metadata and deduplication are handled above this layer.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Prepares the backend (directory, bucket) before first use."""
        pass

    @abstractmethod
    def put(self, key: str, stream: BinaryIO, content_type: str,
            size_bytes: Optional[int] = None, filename: str = "") -> PutResult:
        """
        Writes the whole stream under `key`.
        Atomic for the caller: either the object is fully readable afterwards,
        or BackendFailure is raised and nothing is visible under `key`.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Removes the object. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    def open(self, key: str, offset: int = 0, size: Optional[int] = None) -> BinaryIO:
        """Returns a readable stream over the object (or a byte range of it)."""
        pass

    @abstractmethod
    def list_objects(self) -> Iterator[BackendObject]:
        """Yields every object currently stored, including leftovers of aborted writes."""
        pass


class IStorageRepository(ABC):
    """
    Contract for the metadata node tree (folders and files).
    Implementations raise Conflict on uniqueness violations.
    """

    # --- Files ---

    @abstractmethod
    def get_file(self, file_id: UUID, with_parents: bool = False) -> Optional[StorageFile]:
        pass

    @abstractmethod
    def get_file_by_hash(self, content_hash: str) -> Optional[StorageFile]:
        """Checks if a file with this hash already exists."""
        pass

    @abstractmethod
    def create_file(self, file: StorageFile) -> StorageFile:
        """Inserts a new file row. Raises Conflict if the hash is already taken."""
        pass

    @abstractmethod
    def increment_references(self, file_id: UUID) -> StorageFile:
        """Atomic `reference_count + 1`. Returns the refreshed record."""
        pass

    @abstractmethod
    def release_reference(self, file_id: UUID, force: bool = False) -> int:
        """
        Atomic `reference_count - 1` (never below zero). The row is removed once
        the count reaches zero, or immediately with `force`.
        Returns the remaining count.
        """
        pass

    @abstractmethod
    def increment_downloads(self, file_id: UUID) -> None:
        pass

    @abstractmethod
    def find_files(self, ids: List[UUID]) -> List[StorageFile]:
        pass

    @abstractmethod
    def live_file_keys(self) -> List[str]:
        """Backend keys of every file row still holding at least one reference."""
        pass

    @abstractmethod
    def remove_unreferenced_files(self) -> int:
        """Deletes rows whose reference count dropped to zero. Returns how many."""
        pass

    @abstractmethod
    def update_file(self, file_id: UUID, name: Optional[str] = None, description: Optional[str] = None,
                    parent_id: Optional[UUID] = None) -> StorageFile:
        pass

    # --- Folders ---

    @abstractmethod
    def get_root_folder(self) -> Optional[StorageFolder]:
        pass

    @abstractmethod
    def create_root_folder(self) -> StorageFolder:
        """Inserts the root folder. Raises Conflict if one already exists."""
        pass

    @abstractmethod
    def get_folder(self, folder_id: UUID, with_files: bool = False, with_folders: bool = False,
                   with_parents: bool = False) -> Optional[StorageFolder]:
        pass

    @abstractmethod
    def create_folder(self, name: str, parent_id: UUID, description: str = "") -> StorageFolder:
        pass

    @abstractmethod
    def find_folders(self, ids: List[UUID]) -> List[StorageFolder]:
        pass

    @abstractmethod
    def get_ancestor_ids(self, folder_id: UUID) -> List[UUID]:
        """Ids of every ancestor of the folder, nearest first."""
        pass

    @abstractmethod
    def list_subtree(self, folder_id: UUID) -> List[StorageFolder]:
        """The folder and all its descendants, deepest first, with their files loaded."""
        pass

    @abstractmethod
    def update_folder(self, folder_id: UUID, name: Optional[str] = None, description: Optional[str] = None,
                      parent_id: Optional[UUID] = None) -> StorageFolder:
        pass

    @abstractmethod
    def delete_folder(self, folder_id: UUID) -> int:
        """
        Removes a folder row whose sub-folders are already gone. Files still in it
        are moved to the root level in the same transaction; returns their count.
        Raises Conflict if a sub-folder appeared in the meantime.
        """
        pass
