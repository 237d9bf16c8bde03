import logging
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database.connection import SessionLocal
from .sql_models import StorageFileModel, StorageFolderModel
from ..domain.errors import Conflict, FileNotFound, FolderNotFound
from ..domain.interfaces import IStorageRepository
from ..domain.models import StorageFile, StorageFolder

logger = logging.getLogger(__name__)

ROOT_FOLDER_NAME = "Root"


def _to_folder(model: StorageFolderModel,
               files: Optional[List[StorageFile]] = None,
               folders: Optional[List[StorageFolder]] = None,
               hierarchy: Optional[List[StorageFolder]] = None) -> StorageFolder:
    return StorageFolder(
        id=model.id,
        name=model.name,
        description=model.description or "",
        is_root=bool(model.is_root),
        parent_id=model.parent_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        files=files,
        folders=folders,
        hierarchy=hierarchy,
    )


def _to_file(model: StorageFileModel, hierarchy: Optional[List[StorageFolder]] = None) -> StorageFile:
    return StorageFile(
        id=model.id,
        name=model.name,
        mime_type=model.mime_type,
        size_bytes=model.size_bytes,
        content_hash=model.content_hash,
        reference_count=model.reference_count,
        download_count=model.download_count,
        description=model.description or "",
        source_url=model.source_url or "",
        parent_id=model.parent_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        hierarchy=hierarchy,
    )


def _ancestors(folder: Optional[StorageFolderModel]) -> List[StorageFolder]:
    """Walks the parent chain (lazy loads inside the session). Root first."""
    chain: List[StorageFolder] = []
    seen = set()
    while folder is not None and folder.id not in seen:
        seen.add(folder.id)
        chain.append(_to_folder(folder))
        folder = folder.parent
    chain.reverse()
    return chain


class PostgresStorageRepo(IStorageRepository):
    """
    SQLAlchemy implementation of the node tree.
    One session per call, domain dataclasses out, never live ORM objects.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    # --- Files ---

    def get_file(self, file_id: UUID, with_parents: bool = False) -> Optional[StorageFile]:
        with self.session_factory() as db:
            model = db.get(StorageFileModel, file_id)
            if model is None:
                return None
            hierarchy = _ancestors(model.parent) if with_parents else None
            return _to_file(model, hierarchy)

    def get_file_by_hash(self, content_hash: str) -> Optional[StorageFile]:
        with self.session_factory() as db:
            model = db.query(StorageFileModel).filter(StorageFileModel.content_hash == content_hash).first()
            return _to_file(model) if model else None

    def create_file(self, file: StorageFile) -> StorageFile:
        with self.session_factory() as db:
            model = StorageFileModel(
                id=file.id,
                name=file.name,
                mime_type=file.mime_type,
                size_bytes=file.size_bytes,
                content_hash=file.content_hash,
                reference_count=file.reference_count,
                description=file.description,
                source_url=file.source_url,
                parent_id=file.parent_id,
            )
            db.add(model)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise Conflict(f"A file with hash {file.content_hash} already exists") from e
            db.refresh(model)
            return _to_file(model)

    def increment_references(self, file_id: UUID) -> StorageFile:
        with self.session_factory() as db:
            updated = (
                db.query(StorageFileModel)
                .filter(StorageFileModel.id == file_id)
                .update(
                    {StorageFileModel.reference_count: StorageFileModel.reference_count + 1},
                    synchronize_session=False,
                )
            )
            db.commit()
            if not updated:
                raise FileNotFound(file_id)
            return _to_file(db.get(StorageFileModel, file_id, populate_existing=True))

    def release_reference(self, file_id: UUID, force: bool = False) -> int:
        with self.session_factory() as db:
            query = db.query(StorageFileModel).filter(StorageFileModel.id == file_id)

            if force:
                removed = query.delete(synchronize_session=False)
                db.commit()
                if not removed:
                    raise FileNotFound(file_id)
                return 0

            query.filter(StorageFileModel.reference_count > 0).update(
                {StorageFileModel.reference_count: StorageFileModel.reference_count - 1},
                synchronize_session=False,
            )
            db.commit()

            model = db.get(StorageFileModel, file_id, populate_existing=True)
            if model is None:
                raise FileNotFound(file_id)
            if model.reference_count > 0:
                return model.reference_count

            # Conditional delete: a concurrent upload may have re-incremented the count.
            (
                db.query(StorageFileModel)
                .filter(StorageFileModel.id == file_id, StorageFileModel.reference_count <= 0)
                .delete(synchronize_session=False)
            )
            db.commit()
            return 0

    def increment_downloads(self, file_id: UUID) -> None:
        with self.session_factory() as db:
            (
                db.query(StorageFileModel)
                .filter(StorageFileModel.id == file_id)
                .update(
                    {StorageFileModel.download_count: StorageFileModel.download_count + 1},
                    synchronize_session=False,
                )
            )
            db.commit()

    def find_files(self, ids: List[UUID]) -> List[StorageFile]:
        if not ids:
            return []
        with self.session_factory() as db:
            models = db.query(StorageFileModel).filter(StorageFileModel.id.in_(ids)).all()
            return [_to_file(m) for m in models]

    def live_file_keys(self) -> List[str]:
        with self.session_factory() as db:
            rows = db.query(StorageFileModel.id).filter(StorageFileModel.reference_count > 0).all()
            return [str(row.id) for row in rows]

    def remove_unreferenced_files(self) -> int:
        with self.session_factory() as db:
            removed = (
                db.query(StorageFileModel)
                .filter(StorageFileModel.reference_count <= 0)
                .delete(synchronize_session=False)
            )
            db.commit()
            return removed

    def update_file(self, file_id: UUID, name: Optional[str] = None, description: Optional[str] = None,
                    parent_id: Optional[UUID] = None) -> StorageFile:
        with self.session_factory() as db:
            model = db.get(StorageFileModel, file_id)
            if model is None:
                raise FileNotFound(file_id)
            if name:
                model.name = name
            if description is not None:
                model.description = description
            if parent_id:
                model.parent_id = parent_id
            db.commit()
            db.refresh(model)
            return _to_file(model)

    # --- Folders ---

    def get_root_folder(self) -> Optional[StorageFolder]:
        with self.session_factory() as db:
            model = db.query(StorageFolderModel).filter(StorageFolderModel.is_root.is_(True)).first()
            return _to_folder(model) if model else None

    def create_root_folder(self) -> StorageFolder:
        with self.session_factory() as db:
            model = StorageFolderModel(name=ROOT_FOLDER_NAME, is_root=True)
            db.add(model)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise Conflict("The root folder already exists") from e
            db.refresh(model)
            logger.info(f"Created root folder {model.id}")
            return _to_folder(model)

    def get_folder(self, folder_id: UUID, with_files: bool = False, with_folders: bool = False,
                   with_parents: bool = False) -> Optional[StorageFolder]:
        with self.session_factory() as db:
            model = db.get(StorageFolderModel, folder_id)
            if model is None:
                return None

            files = None
            if with_files:
                query = db.query(StorageFileModel)
                if model.is_root:
                    # Files without a parent belong to the root level.
                    query = query.filter(or_(
                        StorageFileModel.parent_id == model.id,
                        StorageFileModel.parent_id.is_(None),
                    ))
                else:
                    query = query.filter(StorageFileModel.parent_id == model.id)
                files = [_to_file(f) for f in query.order_by(StorageFileModel.name).all()]

            folders = [_to_folder(f) for f in model.folders] if with_folders else None
            hierarchy = _ancestors(model.parent) if with_parents else None
            return _to_folder(model, files=files, folders=folders, hierarchy=hierarchy)

    def create_folder(self, name: str, parent_id: UUID, description: str = "") -> StorageFolder:
        with self.session_factory() as db:
            model = StorageFolderModel(name=name, parent_id=parent_id, description=description)
            db.add(model)
            db.commit()
            db.refresh(model)
            return _to_folder(model)

    def find_folders(self, ids: List[UUID]) -> List[StorageFolder]:
        if not ids:
            return []
        with self.session_factory() as db:
            models = db.query(StorageFolderModel).filter(StorageFolderModel.id.in_(ids)).all()
            return [_to_folder(m) for m in models]

    def get_ancestor_ids(self, folder_id: UUID) -> List[UUID]:
        with self.session_factory() as db:
            model = db.get(StorageFolderModel, folder_id)
            if model is None:
                raise FolderNotFound(folder_id)
            return [folder.id for folder in reversed(_ancestors(model.parent))]

    def list_subtree(self, folder_id: UUID) -> List[StorageFolder]:
        with self.session_factory() as db:
            root = db.get(StorageFolderModel, folder_id)
            if root is None:
                raise FolderNotFound(folder_id)

            # Breadth-first walk, reversed so children come before their parents.
            ordered: List[StorageFolderModel] = []
            pending = [root]
            while pending:
                current = pending.pop(0)
                ordered.append(current)
                pending.extend(current.folders)

            return [
                _to_folder(m, files=[_to_file(f) for f in m.files])
                for m in reversed(ordered)
            ]

    def update_folder(self, folder_id: UUID, name: Optional[str] = None, description: Optional[str] = None,
                      parent_id: Optional[UUID] = None) -> StorageFolder:
        with self.session_factory() as db:
            model = db.get(StorageFolderModel, folder_id)
            if model is None:
                raise FolderNotFound(folder_id)
            if name:
                model.name = name
            if description is not None:
                model.description = description
            if parent_id:
                model.parent_id = parent_id
            db.commit()
            db.refresh(model)
            return _to_folder(model)

    def delete_folder(self, folder_id: UUID) -> int:
        with self.session_factory() as db:
            try:
                # Files still in the folder (including ones added since it was listed) go to the root level.
                detached = (
                    db.query(StorageFileModel)
                    .filter(StorageFileModel.parent_id == folder_id)
                    .update({StorageFileModel.parent_id: None}, synchronize_session=False)
                )
                (
                    db.query(StorageFolderModel)
                    .filter(StorageFolderModel.id == folder_id)
                    .delete(synchronize_session=False)
                )
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise Conflict(f"The folder {folder_id} gained sub-folders while being deleted") from e
            return detached
