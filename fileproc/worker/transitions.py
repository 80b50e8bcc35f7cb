from fileproc.database.connection import get_connection, store_errors
from fileproc.database.models import FileRecord, JobRecord
from fileproc.database.repositories.file_repository import FileRepository
from fileproc.database.repositories.job_repository import JobRepository
from fileproc.processor.metadata import ExtractedMetadata


class JobTransitions:
    """Status transitions that move a Job and its File together.

    Each method commits both writes in one transaction or neither. Driver
    errors surface as PersistenceError, guarded-update misses as
    StaleStateError.
    """

    def __init__(self, job_repo: JobRepository, file_repo: FileRepository) -> None:
        self._job_repo = job_repo
        self._file_repo = file_repo

    def load_job(self, job_id: int) -> JobRecord | None:
        with store_errors(f"load job {job_id}"):
            return self._job_repo.find_by_id(job_id)

    def start(self, job_id: int, file_id: int) -> FileRecord:
        """Job -> processing, File -> processing.

        Raises:
            FileRecordNotFoundError: if the file is gone. Nothing is written.
            FileStateConflictError: if the file was already processed.
        """
        with store_errors(f"start job {job_id}"), get_connection() as conn:
            with conn.transaction():
                self._job_repo.mark_processing(conn, job_id)
                return self._file_repo.mark_processing(conn, file_id)

    def complete(self, job_id: int, file_id: int, metadata: ExtractedMetadata) -> None:
        """File -> processed with metadata, Job -> completed."""
        with store_errors(f"complete job {job_id}"), get_connection() as conn:
            with conn.transaction():
                self._file_repo.mark_processed(conn, file_id, metadata.to_json())
                self._job_repo.mark_completed(conn, job_id)

    def fail(self, job_id: int, file_id: int | None, error: str) -> None:
        """File -> failed (when there is one), Job -> failed with the error."""
        with store_errors(f"fail job {job_id}"), get_connection() as conn:
            with conn.transaction():
                if file_id is not None:
                    self._file_repo.mark_failed(conn, file_id)
                self._job_repo.mark_failed(conn, job_id, error)

    def defer(self, job_id: int, error: str) -> None:
        """Record a retryable attempt error; the job stays processing."""
        with store_errors(f"record error for job {job_id}"), get_connection() as conn:
            with conn.transaction():
                self._job_repo.record_attempt_error(conn, job_id, error)

    def abandon(self, job_id: int, error: str) -> None:
        """Job -> failed, then the File the job references -> failed."""
        with store_errors(f"abandon job {job_id}"), get_connection() as conn:
            with conn.transaction():
                file_id = self._job_repo.mark_failed(conn, job_id, error)
                self._file_repo.mark_failed(conn, file_id)
