import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Percentage saved by compression, two decimals. Zero for empty input."""
    if original_size == 0:
        return 0.0
    return round((1 - compressed_size / original_size) * 100, 2)


@dataclass(frozen=True)
class ExtractedMetadata:
    """Metadata derived from one file's content."""

    hash: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    mime_type: str
    file_extension: str
    last_modified: datetime
    compressed_path: str
    processed_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "hash": self.hash,
            "size": {
                "original": self.original_size,
                "compressed": self.compressed_size,
                "compressionRatio": f"{self.compression_ratio:.2f}%",
            },
            "mimeType": self.mime_type,
            "fileExtension": self.file_extension,
            "lastModified": self.last_modified.isoformat(),
            "compressedPath": self.compressed_path,
            "processedAt": self.processed_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def compose_metadata(
    file_hash: str,
    original_size: int,
    compressed_size: int,
    mime_type: str,
    extension: str,
    mtime: datetime,
    compressed_path: Path,
    now: datetime,
) -> ExtractedMetadata:
    return ExtractedMetadata(
        hash=file_hash,
        original_size=original_size,
        compressed_size=compressed_size,
        compression_ratio=compression_ratio(original_size, compressed_size),
        mime_type=mime_type,
        file_extension=extension,
        last_modified=mtime,
        compressed_path=str(compressed_path),
        processed_at=now,
    )
