import hashlib
import io
from typing import Iterable, Iterator, Optional

from app.core.config.settings import settings
from ..domain.errors import BackendFailure
from ..domain.interfaces import IHasher
from ..domain.models import FileInput, FileSource


class IterableStream(io.RawIOBase):
    """
    Read-only file object over an iterable of byte chunks
    (generators, `requests` iter_content, ...).
    """

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            try:
                self._pending = bytes(next(self._chunks))
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


def open_source(data: FileSource):
    """
    Normalizes any supported input into an object with a `read(size)` method.
    """
    if isinstance(data, FileInput):
        data = data.data
    if callable(data) and not hasattr(data, "read"):
        data = data()

    if isinstance(data, str):
        data = data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(data))
    if hasattr(data, "read"):
        return data
    if hasattr(data, "__iter__"):
        return IterableStream(data)

    raise TypeError(f"Unsupported file data of type {type(data).__name__}")


class HashingStream(io.RawIOBase):
    """
    Taps a source stream: every byte handed to the reader is also fed to the
    digest, so uploading and hashing happen in a single pass.
    """

    def __init__(self, source, algorithm: str = "sha256"):
        self._source = source
        self._digest = hashlib.new(algorithm)
        self.bytes_read = 0
        self.exhausted = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.exhausted:
            return 0
        chunk = self._source.read(len(buffer))
        if not chunk:
            self.exhausted = True
            return 0
        size = len(chunk)
        buffer[:size] = chunk
        self._digest.update(chunk)
        self.bytes_read += size
        return size

    def hexdigest(self) -> str:
        if not self.exhausted:
            raise BackendFailure(
                f"The upload stream was not fully consumed ({self.bytes_read} bytes read), "
                f"the content hash is not available"
            )
        return self._digest.hexdigest()

    def close(self) -> None:
        close_source = getattr(self._source, "close", None)
        if close_source:
            close_source()
        super().close()


class SHA256Hasher(IHasher):
    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size or settings.STORAGE_HASH_CHUNK_SIZE

    def tap(self, data: FileSource) -> HashingStream:
        return HashingStream(open_source(data), "sha256")

    def calculate_sha256(self, data: FileSource) -> str:
        """
        Streams the data in fixed-size chunks so large files never sit in RAM.
        """
        stream = self.tap(data)
        for _ in iter(lambda: stream.read(self.chunk_size), b""):
            pass
        return stream.hexdigest()
