import logging
from typing import Optional, Union
from uuid import UUID

from ..domain.errors import BackendFailure, BadRequest, Conflict, FolderNotFound
from ..domain.interfaces import IStorageRepository
from ..domain.models import StorageFolder

logger = logging.getLogger(__name__)


def as_uuid(value: Union[UUID, str, None]) -> Optional[UUID]:
    """Coerces an identifier coming from a caller. Empty means absent."""
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise BadRequest(f"Invalid identifier \"{value}\"")


class FolderResolver:
    """
    Turns a folder reference into a concrete folder node.
    No id means the root folder, which is created on first use.
    """

    def __init__(self, repo: IStorageRepository):
        self.repo = repo

    def resolve(self,
                folder_id: Union[UUID, str, None] = None,
                with_children: bool = False,
                with_parents: bool = False,
                only_files: bool = False,
                only_folders: bool = False) -> StorageFolder:
        folder_id = as_uuid(folder_id)

        if folder_id is None:
            root = self.resolve_root()
            if not with_children:
                return root
            folder_id = root.id

        folder = self.repo.get_folder(
            folder_id,
            with_files=with_children and not only_folders,
            with_folders=with_children and not only_files,
            with_parents=with_parents,
        )
        if folder is None:
            raise FolderNotFound(folder_id)
        return folder

    def resolve_root(self) -> StorageFolder:
        """
        Idempotent get-or-create. The store allows a single root, so a
        concurrent creator makes our insert fail and we adopt its row.
        """
        root = self.repo.get_root_folder()
        if root is not None:
            return root

        try:
            return self.repo.create_root_folder()
        except Conflict:
            logger.warning("Root folder was created concurrently, re-fetching it")

        root = self.repo.get_root_folder()
        if root is None:
            raise BackendFailure("The root folder could not be created nor found")
        return root
