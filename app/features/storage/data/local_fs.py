import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from app.core.config.settings import settings
from ..domain.errors import BackendFailure, FileNotFound
from ..domain.interfaces import IStorageBackend
from ..domain.models import BackendObject, PutResult

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


class RangeReader:
    """Bounded read-only view over an open file, used for byte-range downloads."""

    def __init__(self, handle: BinaryIO, remaining: int):
        self._handle = handle
        self._remaining = remaining

    def read(self, size: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if size is None or size < 0 or size > self._remaining:
            size = self._remaining
        chunk = self._handle.read(size)
        self._remaining -= len(chunk)
        return chunk

    def close(self) -> None:
        self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class LocalStorageBackend(IStorageBackend):
    """
    Stores blobs under: {root}/{first_2_chars_of_key}/{key}
    This folder sharding prevents performance issues with thousands of files in one dir.
    """

    def __init__(self, root: Optional[Path] = None, chunk_size: Optional[int] = None):
        self.root = Path(root or settings.STORAGE_LOCAL_PATH)
        self.chunk_size = chunk_size or settings.STORAGE_HASH_CHUNK_SIZE

    def _path(self, key: str) -> Path:
        safe_key = Path(key).name
        if not safe_key or safe_key != key:
            raise BackendFailure(f"Invalid storage key: {key!r}")
        return self.root / safe_key[:2] / safe_key

    def initialize(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendFailure(f"Could not create the local storage directory {self.root}: {e}") from e

    def put(self, key: str, stream: BinaryIO, content_type: str,
            size_bytes: Optional[int] = None, filename: str = "") -> PutResult:
        destination = self._path(key)
        # Written next to the destination then renamed, so readers never see a partial object.
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            with open(partial, "wb") as out:
                for chunk in iter(lambda: stream.read(self.chunk_size), b""):
                    out.write(chunk)
                    written += len(chunk)
                out.flush()
                os.fsync(out.fileno())
            os.replace(partial, destination)
        except OSError as e:
            partial.unlink(missing_ok=True)
            logger.error(f"Local write failed for {key}: {e}")
            raise BackendFailure(f"Could not write object {key} to {self.root}: {e}") from e

        return PutResult(key=key, size_bytes=written)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BackendFailure(f"Could not delete object {key}: {e}") from e

    def open(self, key: str, offset: int = 0, size: Optional[int] = None) -> BinaryIO:
        path = self._path(key)
        if not path.is_file():
            raise FileNotFound(key)

        total = path.stat().st_size
        handle = open(path, "rb")
        if offset:
            handle.seek(offset)
        if size is None:
            return handle
        return RangeReader(handle, max(0, min(size, total - offset)))

    def list_objects(self) -> Iterator[BackendObject]:
        if not self.root.exists():
            return
        for shard in sorted(self.root.iterdir()):
            if not shard.is_dir():
                continue
            for item in sorted(shard.iterdir()):
                if item.is_file():
                    stat = item.stat()
                    yield BackendObject(
                        key=item.name,
                        size_bytes=stat.st_size,
                        modified_at=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
                    )

