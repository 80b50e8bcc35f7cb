import hashlib
from pathlib import Path
from typing import BinaryIO

from fileproc.processor.exceptions import StorageIOError

DEFAULT_CHUNK_SIZE = 64 * 1024


def compute_hash(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the hex SHA-256 digest of a stream, read chunk by chunk.

    Raises:
        StorageIOError: if the stream cannot be fully read.
    """
    digest = hashlib.sha256()
    try:
        for chunk in iter(lambda: stream.read(chunk_size), b""):
            digest.update(chunk)
    except OSError as exc:
        raise StorageIOError(f"Failed to read content for hashing: {exc}") from exc
    return digest.hexdigest()


def compute_file_hash(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash the file at path without loading it into memory."""
    try:
        stream = path.open("rb")
    except OSError as exc:
        raise StorageIOError(f"Cannot open {path}: {exc}") from exc
    with stream:
        return compute_hash(stream, chunk_size)
