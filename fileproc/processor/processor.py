import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from fileproc.config.settings import Settings
from fileproc.database.models import FileRecord
from fileproc.logging.logger import Log
from fileproc.processor.compression import compress
from fileproc.processor.digest import DEFAULT_CHUNK_SIZE, compute_file_hash
from fileproc.processor.file_storage import FileStorage
from fileproc.processor.metadata import ExtractedMetadata, compose_metadata
from fileproc.processor.mime_types import detect_mime_type, file_extension


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Processor:
    """Derives metadata for one stored file.

    Pipeline: resolve -> hash -> compress -> stat -> detect type -> compose.
    Touches only the source file and its compressed copy, never the database.
    """

    def __init__(
        self,
        storage: FileStorage,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._chunk_size = chunk_size
        self._clock = clock

    def process(self, file: FileRecord, job_id: int) -> ExtractedMetadata:
        """Run the engine against the file's stored content.

        Raises:
            StorageIOError: on any read/write failure.
            CompressionError: if the content cannot be compressed.
        """
        source = self._storage.resolve(file.storage_path)
        Log.info(f"Processing file {file.id} ({file.original_filename}) for job {job_id}")

        file_hash = compute_file_hash(source, self._chunk_size)
        Log.debug(f"File hash calculated for file {file.id}: {file_hash}")

        compressed = compress(source, attempt_tag=f"job{job_id}-{uuid.uuid4().hex[:8]}")
        Log.debug(f"File {file.id} compressed to {compressed}")

        original_stat = self._storage.stat(source)
        compressed_stat = self._storage.stat(compressed)

        metadata = compose_metadata(
            file_hash=file_hash,
            original_size=original_stat.size,
            compressed_size=compressed_stat.size,
            mime_type=detect_mime_type(file.original_filename),
            extension=file_extension(file.original_filename),
            mtime=original_stat.modified_at,
            compressed_path=compressed,
            now=self._clock(),
        )
        Log.info(
            f"File processing completed for file {file.id}: "
            f"{metadata.original_size} -> {metadata.compressed_size} bytes "
            f"({metadata.compression_ratio:.2f}%)"
        )
        return metadata


def build_processor(settings: Settings, files_root: Path | None = None) -> Processor:
    """Build a Processor from settings."""
    storage = FileStorage(files_root=files_root or settings.files_root)
    return Processor(storage=storage, chunk_size=settings.hash_chunk_size_bytes)
