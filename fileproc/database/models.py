import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class FileStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


FILE_PROCESSING_JOB = "fileProcessing"


@dataclass
class FileRecord:
    """Represents a row from the files table."""

    id: int
    owner_id: int
    original_filename: str
    storage_path: str
    status: FileStatus
    title: str | None = None
    description: str | None = None
    extracted_data: str | None = None
    uploaded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class JobRecord:
    """Represents a row from the jobs table."""

    id: int
    file_id: int
    status: JobStatus
    job_type: str = FILE_PROCESSING_JOB
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status).is_terminal


@dataclass
class FilePage:
    """One page of an owner's files, newest first."""

    files: list[FileRecord]
    total_items: int
    current_page: int
    items_per_page: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total_items / self.items_per_page)
