import os
from types import MappingProxyType

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = MappingProxyType(
    {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".svg": "image/svg+xml",
        ".pdf": "application/pdf",
        ".doc": "application/msword",
        ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ".xls": "application/vnd.ms-excel",
        ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ".ppt": "application/vnd.ms-powerpoint",
        ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        ".txt": "text/plain",
        ".csv": "text/csv",
        ".html": "text/html",
        ".json": "application/json",
        ".xml": "application/xml",
        ".zip": "application/zip",
        ".rar": "application/x-rar-compressed",
        ".7z": "application/x-7z-compressed",
        ".gz": "application/gzip",
    }
)


def file_extension(filename: str) -> str:
    """Extension including the dot, case preserved. Empty if there is none."""
    return os.path.splitext(filename)[1]


def detect_mime_type(filename: str) -> str:
    """Look up the MIME type by extension. Unknown extensions fall back to octet-stream."""
    return MIME_TYPES.get(file_extension(filename).lower(), DEFAULT_MIME_TYPE)
