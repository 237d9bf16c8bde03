"""
Interleavings of concurrent uploads, replayed deterministically by making
the lookups return what a slower request would have seen.
"""
import uuid

import pytest

from app.core.database.connection import SessionLocal
from app.features.storage.data.sql_models import StorageFileModel, StorageFolderModel
from app.features.storage.domain.errors import BackendFailure, Conflict
from app.features.storage.domain.models import FileInput


def _text(name, content):
    return FileInput(data=content, name=name, mime_type="text/plain")


def _blob_keys(backend):
    return sorted(obj.key for obj in backend.list_objects())


def test_losing_the_hash_race_becomes_a_reference(service, repo, backend, monkeypatch):
    """
    Two uploads of the same content both miss the lookup. The second insert
    hits the unique hash and is converted into a reference on the winner.
    """
    winner = service.upload(_text("first.txt", b"contended"))

    real_lookup = repo.get_file_by_hash
    calls = []

    def stale_lookup(content_hash):
        calls.append(content_hash)
        # The first lookup happens before the winner is visible.
        if len(calls) == 1:
            return None
        return real_lookup(content_hash)

    monkeypatch.setattr(repo, "get_file_by_hash", stale_lookup)

    loser = service.upload(_text("second.txt", b"contended"))

    assert loser.id == winner.id
    assert loser.reference_count == 2
    assert len(calls) == 2
    assert _blob_keys(backend) == [winner.key]


def test_repository_reports_duplicate_hash(service, repo):
    first = service.upload(_text("a.txt", b"unique"))
    duplicate = repo.get_file(first.id)
    duplicate.id = uuid.uuid4()

    with pytest.raises(Conflict):
        repo.create_file(duplicate)


def test_winner_deleted_before_reference_is_taken(service, repo, backend, monkeypatch):
    """
    The existing record vanishes between lookup and increment: the upload
    falls back to creating a fresh record for its own blob.
    """
    original = service.upload(_text("a.txt", b"short lived"))
    stale = repo.get_file(original.id)

    service.erase(original.id, force=True)
    monkeypatch.setattr(repo, "get_file_by_hash", lambda content_hash: stale)

    fresh = service.upload(_text("b.txt", b"short lived"))

    assert fresh.id != original.id
    assert fresh.reference_count == 1
    assert fresh.key in _blob_keys(backend)


def test_conflict_without_winner_fails(service, repo, backend, monkeypatch):
    """An insert conflict whose winner cannot be found again is not retried."""
    def always_conflict(file):
        raise Conflict("duplicate")

    monkeypatch.setattr(repo, "get_file_by_hash", lambda content_hash: None)
    monkeypatch.setattr(repo, "create_file", always_conflict)

    with pytest.raises(BackendFailure):
        service.upload(_text("a.txt", b"orphan"))

    assert _blob_keys(backend) == []


def test_root_folder_created_once(service, repo, monkeypatch):
    """
    Two requests both see no root; the slower insert conflicts and adopts
    the root created by the faster one.
    """
    root = service.folders.resolve_root()

    real_get_root = repo.get_root_folder
    calls = []

    def stale_get_root():
        calls.append(1)
        if len(calls) == 1:
            return None
        return real_get_root()

    monkeypatch.setattr(repo, "get_root_folder", stale_get_root)

    assert service.folders.resolve_root().id == root.id

    with SessionLocal() as db:
        assert db.query(StorageFolderModel).filter(StorageFolderModel.is_root.is_(True)).count() == 1


def test_reference_increments_are_atomic(service, repo):
    """Increments are single UPDATE statements, not read-modify-write."""
    file = service.upload(_text("a.txt", b"counted"))
    for _ in range(10):
        repo.increment_references(file.id)

    with SessionLocal() as db:
        assert db.get(StorageFileModel, file.id).reference_count == 11


def test_sweep_during_upload_keeps_pending_blob(service, repo, backend, monkeypatch):
    """
    A purge running after the blob is written but before its row commits
    must leave the blob alone under the default grace window.
    """
    real_create = repo.create_file
    sweeps = []

    def create_after_sweep(file):
        sweeps.append(service.sweep_orphans())
        return real_create(file)

    monkeypatch.setattr(repo, "create_file", create_after_sweep)

    file = service.upload(_text("precious.txt", b"precious"))

    assert sweeps[0].count == 0
    assert _blob_keys(backend) == [file.key]
    assert service.download(file.id).data() == b"precious"
