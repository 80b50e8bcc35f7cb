from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from fileproc.processor.exceptions import StorageIOError


@dataclass(frozen=True)
class StoredFileStat:
    size: int
    modified_at: datetime


class FileStorage:
    """Resolves storage locators to filesystem paths under a files root."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def resolve(self, storage_path: str) -> Path:
        """Absolute locators are used as-is, relative ones live under files_root."""
        path = Path(storage_path)
        if path.is_absolute():
            return path
        return self._files_root / path

    def stat(self, path: Path) -> StoredFileStat:
        """Size and last-modified time of a stored file.

        Raises:
            StorageIOError: if the file cannot be inspected.
        """
        try:
            info = path.stat()
        except OSError as exc:
            raise StorageIOError(f"Cannot stat {path}: {exc}") from exc
        return StoredFileStat(
            size=info.st_size,
            modified_at=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
        )
