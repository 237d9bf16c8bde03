import io

import pytest

from app.features.storage.data.local_fs import LocalStorageBackend, PARTIAL_SUFFIX
from app.features.storage.domain.errors import BackendFailure, FileNotFound


class ExplodingStream(io.RawIOBase):
    """Yields some bytes, then fails like a dropped client connection."""

    def __init__(self):
        self.calls = 0

    def readable(self):
        return True

    def readinto(self, buffer):
        self.calls += 1
        if self.calls > 1:
            raise OSError("connection reset")
        buffer[:4] = b"part"
        return 4


def test_put_and_open(backend, blob_root):
    result = backend.put("abcdef", io.BytesIO(b"hello world"), "text/plain")

    assert result.key == "abcdef"
    assert result.size_bytes == 11
    assert (blob_root / "ab" / "abcdef").read_bytes() == b"hello world"

    with backend.open("abcdef") as handle:
        assert handle.read() == b"hello world"


def test_open_range(backend):
    backend.put("abcdef", io.BytesIO(b"hello world"), "text/plain")

    with backend.open("abcdef", offset=6, size=3) as handle:
        assert handle.read() == b"wor"

    with backend.open("abcdef", offset=6) as handle:
        assert handle.read() == b"world"

    # Range past the end is truncated
    with backend.open("abcdef", offset=9, size=100) as handle:
        assert handle.read() == b"ld"


def test_open_missing(backend):
    with pytest.raises(FileNotFound):
        backend.open("missing")


def test_failed_put_leaves_nothing(backend, blob_root):
    with pytest.raises(BackendFailure):
        backend.put("abcdef", ExplodingStream(), "text/plain")

    assert not (blob_root / "ab" / "abcdef").exists()
    assert not (blob_root / "ab" / ("abcdef" + PARTIAL_SUFFIX)).exists()
    assert list(backend.list_objects()) == []


def test_delete_is_idempotent(backend):
    backend.put("abcdef", io.BytesIO(b"x"), "text/plain")
    backend.delete("abcdef")
    backend.delete("abcdef")

    assert list(backend.list_objects()) == []


def test_list_objects(backend):
    backend.put("aa01", io.BytesIO(b"1"), "text/plain")
    backend.put("bb02", io.BytesIO(b"22"), "text/plain")

    objects = {obj.key: obj for obj in backend.list_objects()}

    assert set(objects) == {"aa01", "bb02"}
    assert objects["bb02"].size_bytes == 2
    assert objects["aa01"].modified_at is not None


def test_partial_leftovers_are_listed(backend, blob_root):
    """A crash between write and rename leaves a partial object for purge."""
    (blob_root / "cc").mkdir()
    (blob_root / "cc" / ("cc03" + PARTIAL_SUFFIX)).write_bytes(b"torn")

    assert [obj.key for obj in backend.list_objects()] == ["cc03" + PARTIAL_SUFFIX]


@pytest.mark.parametrize("key", ["", "../escape", "a/b"])
def test_rejects_unsafe_keys(backend, key):
    with pytest.raises(BackendFailure):
        backend.put(key, io.BytesIO(b"x"), "text/plain")


def test_initialize_creates_root(tmp_path):
    root = tmp_path / "nested" / "store"
    LocalStorageBackend(root=root).initialize()
    assert root.is_dir()
