import gzip
import os
import shutil
import zlib
from pathlib import Path

from fileproc.processor.exceptions import CompressionError, StorageIOError

COMPRESSED_SUFFIX = ".gz"


def compressed_path_for(path: Path) -> Path:
    """Derive the artifact path: `<original>.gz`."""
    return path.with_name(path.name + COMPRESSED_SUFFIX)


def compress(path: Path, attempt_tag: str) -> Path:
    """Gzip the file at path into `<path>.gz` and return the artifact path.

    The output is staged under a per-attempt temporary name and moved into
    place atomically, so concurrent attempts never expose a partial artifact.
    The gzip header carries no filename and a zero mtime, so identical input
    always yields identical output.

    Raises:
        StorageIOError: on read or write failure.
        CompressionError: if the compressor rejects the input.
    """
    target = compressed_path_for(path)
    staging = target.with_name(f"{target.name}.{attempt_tag}.tmp")
    try:
        with path.open("rb") as source, staging.open("wb") as raw:
            with gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz:
                shutil.copyfileobj(source, gz)
        os.replace(staging, target)
    except zlib.error as exc:
        staging.unlink(missing_ok=True)
        raise CompressionError(f"Failed to compress {path}: {exc}") from exc
    except OSError as exc:
        staging.unlink(missing_ok=True)
        raise StorageIOError(f"Failed to write compressed copy of {path}: {exc}") from exc
    return target
