from typing import Any

import psycopg
from psycopg.rows import dict_row

from fileproc.database.connection import get_connection
from fileproc.database.exceptions import PersistenceError, StaleStateError
from fileproc.database.models import FILE_PROCESSING_JOB, JobRecord, JobStatus

_JOB_COLUMNS = """
    id, file_id, job_type, status, error_message,
    started_at, completed_at, created_at, updated_at
"""


def _row_to_job(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        file_id=row["file_id"],
        job_type=row["job_type"],
        status=JobStatus(row["status"]),
        error_message=row["error_message"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobRepository:
    """Database operations for the jobs table.

    Status writes take the caller's connection so that a Job and its File can
    be moved inside one transaction. Every write is guarded by the expected
    prior status and raises StaleStateError when no row matched.
    """

    def create(
        self,
        conn: psycopg.Connection[Any],
        file_id: int,
        job_type: str = FILE_PROCESSING_JOB,
    ) -> JobRecord:
        """Insert a queued job for a file."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                INSERT INTO jobs (file_id, job_type, status)
                VALUES (%s, %s, %s)
                RETURNING {_JOB_COLUMNS}
                """,
                (file_id, job_type, JobStatus.QUEUED.value),
            )
            row = cur.fetchone()
        if row is None:
            raise PersistenceError(f"Insert of job for file {file_id} returned no row")
        return _row_to_job(row)

    def find_by_id(self, job_id: int) -> JobRecord | None:
        """Find a job by ID."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_job(row)

    def list_for_file(self, file_id: int) -> list[JobRecord]:
        """All jobs for a file, oldest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS} FROM jobs
                    WHERE file_id = %s
                    ORDER BY created_at, id
                    """,
                    (file_id,),
                )
                rows = cur.fetchall()
        return [_row_to_job(row) for row in rows]

    def has_active_job(self, conn: psycopg.Connection[Any], file_id: int) -> bool:
        """True if a job for this file is still queued or processing."""
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT 1 FROM jobs
                WHERE file_id = %s AND status IN (%s, %s)
                LIMIT 1
                """,
                (file_id, JobStatus.QUEUED.value, JobStatus.PROCESSING.value),
            )
            return cur.fetchone() is not None

    def mark_processing(self, conn: psycopg.Connection[Any], job_id: int) -> None:
        """Move a queued (or redelivered processing) job to processing."""
        self._guarded_update(
            conn,
            job_id,
            """
            UPDATE jobs
            SET status = %s, started_at = COALESCE(started_at, NOW()), updated_at = NOW()
            WHERE id = %s AND status IN (%s, %s)
            """,
            (
                JobStatus.PROCESSING.value,
                job_id,
                JobStatus.QUEUED.value,
                JobStatus.PROCESSING.value,
            ),
        )

    def mark_completed(self, conn: psycopg.Connection[Any], job_id: int) -> None:
        """Mark a processing job as completed."""
        self._guarded_update(
            conn,
            job_id,
            """
            UPDATE jobs
            SET status = %s, error_message = NULL,
                completed_at = NOW(), updated_at = NOW()
            WHERE id = %s AND status = %s
            """,
            (JobStatus.COMPLETED.value, job_id, JobStatus.PROCESSING.value),
        )

    def mark_failed(self, conn: psycopg.Connection[Any], job_id: int, error: str) -> int:
        """Mark a non-terminal job as permanently failed. Returns the job's file id."""
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE jobs
                SET status = %s, error_message = %s,
                    completed_at = NOW(), updated_at = NOW()
                WHERE id = %s AND status IN (%s, %s)
                RETURNING file_id
                """,
                (
                    JobStatus.FAILED.value,
                    error,
                    job_id,
                    JobStatus.QUEUED.value,
                    JobStatus.PROCESSING.value,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise StaleStateError(f"Job {job_id} is not in the expected status")
        return int(row[0])

    def record_attempt_error(
        self, conn: psycopg.Connection[Any], job_id: int, error: str
    ) -> None:
        """Store the error of a failed attempt that will be redelivered."""
        self._guarded_update(
            conn,
            job_id,
            """
            UPDATE jobs
            SET error_message = %s, updated_at = NOW()
            WHERE id = %s AND status = %s
            """,
            (error, job_id, JobStatus.PROCESSING.value),
        )

    @staticmethod
    def _guarded_update(
        conn: psycopg.Connection[Any],
        job_id: int,
        sql: str,
        params: tuple[object, ...],
    ) -> None:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            if cur.rowcount == 0:
                raise StaleStateError(f"Job {job_id} is not in the expected status")
