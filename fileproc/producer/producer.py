from dataclasses import dataclass

from fileproc.database.connection import get_connection, store_errors
from fileproc.database.models import FileStatus
from fileproc.database.repositories.file_repository import FileRepository
from fileproc.database.repositories.job_repository import JobRepository
from fileproc.logging.logger import Log
from fileproc.queue.models import JobDescriptor
from fileproc.queue.postgres_queue import PostgresDispatchQueue


class ReprocessError(Exception):
    """Raised when a file cannot be given a new processing job."""


class ActiveJobExistsError(ReprocessError):
    """Raised when the file still has a queued or processing job."""


@dataclass(frozen=True)
class Submission:
    file_id: int
    job_id: int
    message_id: int


class Producer:
    """Creates File and Job records and publishes the job descriptor.

    Records and queue message are written in one transaction, so a job is
    never visible without its message or the other way round.
    """

    def __init__(
        self,
        file_repo: FileRepository,
        job_repo: JobRepository,
        queue: PostgresDispatchQueue,
    ) -> None:
        self._file_repo = file_repo
        self._job_repo = job_repo
        self._queue = queue

    def submit(
        self,
        owner_id: int,
        original_filename: str,
        storage_path: str,
        title: str | None = None,
        description: str | None = None,
    ) -> Submission:
        """Register an uploaded file and queue its processing job."""
        with store_errors("submit file"), get_connection() as conn:
            with conn.transaction():
                file = self._file_repo.create(
                    conn,
                    owner_id=owner_id,
                    original_filename=original_filename,
                    storage_path=storage_path,
                    title=title,
                    description=description,
                )
                job = self._job_repo.create(conn, file.id)
                message_id = self._queue.enqueue(
                    JobDescriptor(file_id=file.id, job_id=job.id, owner_id=owner_id),
                    conn=conn,
                )
        Log.info(f"File {file.id} uploaded by user {owner_id}, job {job.id} queued")
        return Submission(file_id=file.id, job_id=job.id, message_id=message_id)

    def reprocess(self, file_id: int) -> Submission:
        """Queue a new job for a file whose previous job failed.

        Raises:
            FileRecordNotFoundError: if the file does not exist.
            ActiveJobExistsError: if a job for the file is still queued or processing.
            ReprocessError: if the file is not in failed status.
        """
        with store_errors(f"reprocess file {file_id}"), get_connection() as conn:
            with conn.transaction():
                file = self._file_repo.get_for_update(conn, file_id)
                if self._job_repo.has_active_job(conn, file_id):
                    raise ActiveJobExistsError(f"File {file_id} already has an active job")
                if file.status is not FileStatus.FAILED:
                    raise ReprocessError(
                        f"File {file_id} is {file.status.value}, only failed files can be reprocessed"
                    )
                job = self._job_repo.create(conn, file_id)
                message_id = self._queue.enqueue(
                    JobDescriptor(file_id=file_id, job_id=job.id, owner_id=file.owner_id),
                    conn=conn,
                )
        Log.info(f"File {file_id} resubmitted as job {job.id}")
        return Submission(file_id=file_id, job_id=job.id, message_id=message_id)
