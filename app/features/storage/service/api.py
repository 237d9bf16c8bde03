import logging
import posixpath
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence, Union
from urllib.parse import urlparse
from uuid import UUID, uuid4

import requests

from app.core.config.settings import settings
from app.core.security.authorization import AllowAllAuthorizer, IAuthorizer, Permission
from ..domain import permissions
from ..domain.errors import (
    BackendFailure, BadRequest, Conflict, FileNotFound, FolderNotFound, Forbidden, InvalidMove,
    MissingFileId, MissingFileName, MissingFileType, NodeNotFound, RemoteDownloadFailed,
)
from ..domain.interfaces import IHasher, IStorageBackend, IStorageRepository
from ..domain.models import DownloadResult, FileInput, PurgeResult, StorageFile, StorageFolder
from ..data.factory import create_storage_backend
from ..data.hasher import SHA256Hasher
from ..data.repository import PostgresStorageRepo
from .folder_resolver import FolderResolver, as_uuid

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds

NodeId = Union[UUID, str]


class StorageService:
    """
    Facade for the Storage Feature.
    Orchestrates hashing, the blob backend, and the metadata node tree.
    """

    def __init__(self,
                 backend: Optional[IStorageBackend] = None,
                 repo: Optional[IStorageRepository] = None,
                 hasher: Optional[IHasher] = None,
                 authorizer: Optional[IAuthorizer] = None):
        self.backend = backend or create_storage_backend()
        self.repo = repo or PostgresStorageRepo()
        self.hasher = hasher or SHA256Hasher()
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.folders = FolderResolver(self.repo)

    def initialize(self) -> None:
        """Prepares the backend and makes sure the root folder exists."""
        self.backend.initialize()
        self.folders.resolve_root()

    def _authorize(self, actor: Any, permission: Permission) -> None:
        result = self.authorizer.authorize(actor, permission.id)
        if not result.allowed:
            raise Forbidden(result.reason or f"Missing permission \"{permission.id}\"")

    # --- Upload ---

    def upload_files(self, files: Sequence[FileInput], parent_id: Optional[NodeId] = None,
                     actor: Any = None) -> List[StorageFile]:
        """
        Uploads each file into the same parent folder (root when absent).
        """
        self._authorize(actor, permissions.FILE_UPLOAD)
        parent = self.folders.resolve(parent_id)
        return [self._upload(file, parent) for file in files]

    def upload(self, file: FileInput, parent_id: Optional[NodeId] = None, actor: Any = None) -> StorageFile:
        self._authorize(actor, permissions.FILE_UPLOAD)
        parent = self.folders.resolve(parent_id if parent_id is not None else file.parent_id)
        return self._upload(file, parent)

    def _upload(self, file: FileInput, parent: StorageFolder) -> StorageFile:
        """
        Deduplicating upload:
        - Streams the data to the backend under a fresh key while hashing it.
        - Looks the hash up in the node tree.
        - Duplicate: one more reference on the existing file, the new object is dropped.
        - Novel: a new file row pointing at the new object.
        """
        if not file.name:
            raise MissingFileName()
        if not file.mime_type:
            raise MissingFileType()

        # 1. Write optimistically, the hash is only known once the stream is drained.
        key = str(uuid4())
        stream = self.hasher.tap(file.data)
        try:
            self.backend.put(key, stream, content_type=file.mime_type,
                             size_bytes=file.size_bytes, filename=file.name)
            content_hash = stream.hexdigest()
        except Exception:
            # Nothing is committed yet. Whatever reached the backend is garbage.
            self._discard(key)
            raise
        finally:
            stream.close()

        size_bytes = stream.bytes_read
        if file.size_bytes is not None and file.size_bytes != size_bytes:
            logger.warning(f"Declared size of {file.name} ({file.size_bytes}) differs from received bytes ({size_bytes})")

        # 2. Reconcile against the metadata.
        existing = self.repo.get_file_by_hash(content_hash)
        if existing is not None:
            duplicate = self._add_reference(existing, key)
            if duplicate is not None:
                return duplicate

        candidate = StorageFile(
            id=UUID(key),
            name=file.name,
            mime_type=file.mime_type,
            size_bytes=size_bytes,
            content_hash=content_hash,
            reference_count=1,
            description=file.description or "",
            source_url=file.source_url or "",
            parent_id=parent.id,
        )

        try:
            created = self.repo.create_file(candidate)
        except Conflict:
            # Another upload of the same content committed first.
            logger.warning(f"Lost the race for hash {content_hash}, converting into a reference")
            winner = self.repo.get_file_by_hash(content_hash)
            duplicate = self._add_reference(winner, key) if winner else None
            if duplicate is not None:
                return duplicate
            self._discard(key)
            raise BackendFailure(f"Could not reconcile the upload of {file.name} (hash {content_hash})")

        logger.info(f"Stored new file {created.id} ({created.name}, {created.size_bytes} bytes)")
        return created

    def _add_reference(self, existing: StorageFile, key: str) -> Optional[StorageFile]:
        """
        Counts the upload against `existing` and drops the redundant object.
        Returns None if the row vanished in the meantime, `key` is then kept.
        """
        try:
            updated = self.repo.increment_references(existing.id)
        except FileNotFound:
            return None
        self._discard(key)
        logger.info(f"Duplicate upload of {existing.id}, references: {updated.reference_count}")
        return updated

    def _discard(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except BackendFailure:
            logger.exception(f"Could not delete object {key}, it is left for the purge sweep")

    def upload_from_url(self, url: str, overrides: Optional[dict] = None,
                        parent_id: Optional[NodeId] = None, actor: Any = None) -> StorageFile:
        """
        Streams a remote resource into storage. The remote server must announce
        both Content-Type and Content-Length.
        """
        self._authorize(actor, permissions.FILE_UPLOAD)
        overrides = overrides or {}
        parent = self.folders.resolve(parent_id)

        try:
            response = requests.get(url, stream=True, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise RemoteDownloadFailed(url, str(e)) from e

        try:
            response.raise_for_status()
            mime_type = response.headers.get("Content-Type")
            size = response.headers.get("Content-Length")
            if not mime_type or not size:
                raise RemoteDownloadFailed(url, "missing Content-Type or Content-Length header")

            file = FileInput(
                data=response.iter_content(chunk_size=settings.STORAGE_HASH_CHUNK_SIZE),
                name=overrides.get("name") or posixpath.basename(urlparse(url).path),
                mime_type=overrides.get("mime_type") or mime_type.split(";")[0].strip(),
                size_bytes=int(size),
                description=overrides.get("description", ""),
                source_url=url,
            )
            return self._upload(file, parent)
        except requests.RequestException as e:
            raise RemoteDownloadFailed(url, str(e)) from e
        except BackendFailure as e:
            # Local writes wrap OSError, which requests errors derive from.
            if isinstance(e.__cause__, requests.RequestException):
                raise RemoteDownloadFailed(url, str(e.__cause__)) from e.__cause__
            raise
        finally:
            response.close()

    # --- Read ---

    def resolve_file(self, file_id: Optional[NodeId], with_parents: bool = False) -> StorageFile:
        file_id = as_uuid(file_id)
        if file_id is None:
            raise MissingFileId()
        file = self.repo.get_file(file_id, with_parents=with_parents)
        if file is None:
            raise FileNotFound(file_id)
        return file

    def resolve_folder(self,
                       folder_id: Optional[NodeId] = None,
                       with_children: bool = False,
                       with_parents: bool = False,
                       only_files: bool = False,
                       only_folders: bool = False,
                       actor: Any = None) -> StorageFolder:
        self._authorize(actor, permissions.FOLDER_READ)
        return self.folders.resolve(
            folder_id,
            with_children=with_children,
            with_parents=with_parents,
            only_files=only_files,
            only_folders=only_folders,
        )

    def download(self, file_id: NodeId, offset: int = 0, size: Optional[int] = None,
                 actor: Any = None) -> DownloadResult:
        self._authorize(actor, permissions.FILE_DOWNLOAD)
        if offset < 0 or (size is not None and size < 0):
            raise BadRequest("Download range must not be negative")

        file = self.resolve_file(file_id)
        offset = min(offset, file.size_bytes)
        available = file.size_bytes - offset
        length = available if size is None else min(size, available)

        stream = self.backend.open(file.key, offset=offset, size=None if size is None else length)
        self.repo.increment_downloads(file.id)
        return DownloadResult(stream=stream, mime_type=file.mime_type, size_bytes=length)

    # --- Folders & Nodes ---

    def create_folder(self, name: str, parent_id: Optional[NodeId] = None, description: str = "",
                      actor: Any = None) -> StorageFolder:
        self._authorize(actor, permissions.FOLDER_CREATE)
        if not name or not name.strip():
            raise BadRequest("The folder name must not be empty")
        parent = self.folders.resolve(parent_id)
        folder = self.repo.create_folder(name.strip(), parent.id, description=description)
        logger.info(f"Created folder {folder.id} ({folder.name}) under {parent.id}")
        return folder

    def update_nodes(self,
                     ids: Sequence[NodeId],
                     name: Optional[str] = None,
                     description: Optional[str] = None,
                     parent_id: Optional[NodeId] = None,
                     only_files: bool = False,
                     only_folders: bool = False,
                     actor: Any = None) -> List[Union[StorageFile, StorageFolder]]:
        """
        Renames, describes or moves files and folders.
        A folder can never be moved below itself.
        """
        self._authorize(actor, permissions.UPDATE)
        node_ids = [as_uuid(i) for i in ids]
        files = [] if only_folders else self.repo.find_files(node_ids)
        folders = [] if only_files else self.repo.find_folders(node_ids)
        self._assert_all_found(node_ids, files, folders)

        target = self.folders.resolve(parent_id) if parent_id is not None else None
        if target is not None:
            target_lineage = {target.id, *self.repo.get_ancestor_ids(target.id)}
            for folder in folders:
                if folder.is_root:
                    raise InvalidMove("The root folder cannot be moved")
                if folder.id in target_lineage:
                    raise InvalidMove(f"Cannot move folder \"{folder.name}\" into itself or one of its descendants")

        new_parent_id = target.id if target else None
        updated: List[Union[StorageFile, StorageFolder]] = []
        for file in files:
            updated.append(self.repo.update_file(file.id, name=name, description=description, parent_id=new_parent_id))
        for folder in folders:
            updated.append(self.repo.update_folder(folder.id, name=name, description=description, parent_id=new_parent_id))
        return updated

    def delete_nodes(self, ids: Sequence[NodeId], only_files: bool = False, only_folders: bool = False,
                     actor: Any = None) -> None:
        """
        Deleting a file releases one of its references, the row goes away at zero.
        Deleting a folder cascades: sub-folders are removed and every contained
        file releases one reference. Blobs are only reclaimed by `purge_orphans`.
        """
        self._authorize(actor, permissions.DELETE)
        node_ids = [as_uuid(i) for i in ids]
        files = [] if only_folders else self.repo.find_files(node_ids)
        folders = [] if only_files else self.repo.find_folders(node_ids)
        self._assert_all_found(node_ids, files, folders)

        for folder in folders:
            if folder.is_root:
                raise BadRequest("The root folder cannot be deleted")

        released = set()
        for folder in folders:
            self._delete_folder_tree(folder.id, released)
        for file in files:
            if file.id in released:
                continue
            released.add(file.id)
            remaining = self.repo.release_reference(file.id)
            logger.info(f"Released file {file.id}, references left: {remaining}")

    def _delete_folder_tree(self, folder_id: UUID, released: set) -> None:
        try:
            subtree = self.repo.list_subtree(folder_id)
        except FolderNotFound:
            return

        for folder in subtree:
            for file in folder.files or []:
                if file.id in released:
                    continue
                released.add(file.id)
                try:
                    self.repo.release_reference(file.id)
                except FileNotFound:
                    continue
            # Files that still hold references move to the root level.
            self.repo.delete_folder(folder.id)
        logger.info(f"Deleted folder {folder_id} and {len(subtree) - 1} sub-folders")

    def erase(self, file_id: NodeId, force: bool = False, actor: Any = None) -> int:
        """
        Releases one reference of a file, or all of them with `force`.
        Returns the remaining count.
        """
        self._authorize(actor, permissions.DELETE)
        file = self.resolve_file(file_id)
        return self.repo.release_reference(file.id, force=force)

    @staticmethod
    def _assert_all_found(ids: List[UUID], files: List[StorageFile], folders: List[StorageFolder]) -> None:
        found = {f.id for f in files} | {f.id for f in folders}
        for node_id in ids:
            if node_id not in found:
                raise NodeNotFound(node_id)

    # --- Purge ---

    def purge_orphans(self, min_age_seconds: Optional[int] = None, actor: Any = None) -> PurgeResult:
        self._authorize(actor, permissions.PURGE)
        return self.sweep_orphans(min_age_seconds)

    def sweep_orphans(self, min_age_seconds: Optional[int] = None) -> PurgeResult:
        """
        Reconciliation sweep: removes every backend object that no live file
        row points at (aborted uploads, files whose references reached zero).
        """
        if min_age_seconds is None:
            min_age_seconds = settings.STORAGE_PURGE_GRACE_SECONDS
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)

        removed_rows = self.repo.remove_unreferenced_files()
        objects = list(self.backend.list_objects())
        live = set(self.repo.live_file_keys())

        result = PurgeResult()
        for obj in objects:
            if obj.key in live:
                continue
            if min_age_seconds and obj.modified_at is not None and obj.modified_at > cutoff:
                continue
            self.backend.delete(obj.key)
            result.count += 1
            result.size_bytes += obj.size_bytes
            result.keys.append(obj.key)

        logger.info(f"Purge complete. Removed {result.count} objects ({result.size_bytes} bytes), {removed_rows} stale rows")
        return result


# Singleton Instance for easy import
storage = StorageService()
