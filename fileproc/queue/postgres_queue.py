from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from fileproc.database.connection import get_connection, store_errors
from fileproc.database.exceptions import PersistenceError
from fileproc.database.models import FileStatus, JobStatus
from fileproc.logging.logger import Log
from fileproc.queue.base import BaseDispatchQueue
from fileproc.queue.models import Delivery, JobDescriptor, QueueOptions

STALLED_LIMIT_MESSAGE = "job stalled more than allowable limit"
STALLED_JOB_ERROR = f"StalledError: {STALLED_LIMIT_MESSAGE}"


class PostgresDispatchQueue(BaseDispatchQueue):
    """Dispatch queue stored in the file_processing_queue table.

    Claims use SELECT ... FOR UPDATE SKIP LOCKED so a message is held by one
    worker at a time. Idle workers block on LISTEN until the producer's
    NOTIFY (or the wait timeout) instead of polling in a tight loop.
    """

    def __init__(self, options: QueueOptions, listen_conninfo: str) -> None:
        self._options = options
        self._listen_conninfo = listen_conninfo
        self._listener: psycopg.Connection[Any] | None = None

    @property
    def options(self) -> QueueOptions:
        return self._options

    @property
    def channel(self) -> str:
        return f"{self._options.name}_jobs"

    def enqueue(
        self,
        descriptor: JobDescriptor,
        conn: psycopg.Connection[Any] | None = None,
    ) -> int:
        """Insert a waiting message and notify listeners.

        With `conn`, the insert joins the caller's transaction and the
        notification is delivered when that transaction commits.
        """
        if conn is not None:
            with store_errors("enqueue job"):
                return self._insert(conn, descriptor)
        with store_errors("enqueue job"), get_connection() as own_conn:
            message_id = self._insert(own_conn, descriptor)
            own_conn.commit()
            return message_id

    def receive(self, timeout: float) -> Delivery | None:
        with store_errors("listen for jobs"):
            self._ensure_listening()
        delivery = self._claim()
        if delivery is not None:
            return delivery
        self._wait_for_notification(timeout)
        return self._claim()

    def ack(self, delivery: Delivery) -> None:
        if self._options.remove_on_complete:
            query = """
                DELETE FROM file_processing_queue
                WHERE id = %s AND status = 'active' AND attempts_made = %s
            """
            params: tuple[object, ...] = (delivery.message_id, delivery.attempt)
        else:
            query = """
                UPDATE file_processing_queue
                SET status = 'completed', locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = 'active' AND attempts_made = %s
            """
            params = (delivery.message_id, delivery.attempt)
        self._settle(delivery, "ack", query, params)

    def reject(self, delivery: Delivery, error: str) -> None:
        if self._options.remove_on_fail:
            query = """
                DELETE FROM file_processing_queue
                WHERE id = %s AND status = 'active' AND attempts_made = %s
            """
            params: tuple[object, ...] = (delivery.message_id, delivery.attempt)
        else:
            query = """
                UPDATE file_processing_queue
                SET status = 'failed', last_error = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = 'active' AND attempts_made = %s
            """
            params = (error, delivery.message_id, delivery.attempt)
        self._settle(delivery, "reject", query, params)

    def nack(self, delivery: Delivery, error: str) -> None:
        if delivery.is_final_attempt:
            Log.warning(
                f"Message {delivery.message_id} used all {delivery.max_attempts} attempts"
            )
            self.reject(delivery, error)
            return

        delay = self._options.backoff_delay(delivery.attempt)
        self._settle(
            delivery,
            "nack",
            """
            UPDATE file_processing_queue
            SET status = 'waiting', last_error = %s, locked_at = NULL,
                available_at = NOW() + make_interval(secs => %s), updated_at = NOW()
            WHERE id = %s AND status = 'active' AND attempts_made = %s
            """,
            (error, delay, delivery.message_id, delivery.attempt),
        )
        Log.info(f"Message {delivery.message_id} will be redelivered in {delay:.1f}s")

    def close(self) -> None:
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def _insert(self, conn: psycopg.Connection[Any], descriptor: JobDescriptor) -> int:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO file_processing_queue (queue_name, file_id, job_id, owner_id)
                VALUES (%s, %s, %s, %s)
                RETURNING id
                """,
                (
                    self._options.name,
                    descriptor.file_id,
                    descriptor.job_id,
                    descriptor.owner_id,
                ),
            )
            row = cur.fetchone()
            if row is None:
                raise PersistenceError(f"Enqueue of job {descriptor.job_id} returned no row")
            cur.execute("SELECT pg_notify(%s, %s)", (self.channel, str(descriptor.job_id)))
        Log.info(
            f"Enqueued job {descriptor.job_id} for file {descriptor.file_id} "
            f"as message {row[0]}"
        )
        return int(row[0])

    def _claim(self) -> Delivery | None:
        visibility = self._options.visibility_timeout_seconds
        with store_errors("claim job"), get_connection() as conn:
            self._fail_exhausted_stalled(conn, visibility)
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    WITH next AS (
                        SELECT id, status AS previous_status
                        FROM file_processing_queue
                        WHERE queue_name = %s
                          AND (
                            (status = 'waiting' AND available_at <= NOW())
                            OR (status = 'active'
                                AND locked_at < NOW() - make_interval(secs => %s))
                          )
                        ORDER BY available_at, id
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    UPDATE file_processing_queue q
                    SET status = 'active', attempts_made = q.attempts_made + 1,
                        locked_at = NOW(), updated_at = NOW()
                    FROM next
                    WHERE q.id = next.id
                    RETURNING q.id, q.file_id, q.job_id, q.owner_id,
                              q.attempts_made, next.previous_status
                    """,
                    (self._options.name, visibility),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            return None

        stalled = row["previous_status"] == "active"
        if stalled:
            Log.warning(f"Message {row['id']} stalled, redelivering job {row['job_id']}")
        return Delivery(
            message_id=row["id"],
            descriptor=JobDescriptor(
                file_id=row["file_id"],
                job_id=row["job_id"],
                owner_id=row["owner_id"],
            ),
            attempt=row["attempts_made"],
            max_attempts=self._options.max_attempts,
            stalled=stalled,
        )

    def _fail_exhausted_stalled(self, conn: psycopg.Connection[Any], visibility: int) -> None:
        """Stalled messages with no attempts left are failed instead of reclaimed.

        The job and its file are failed in the same statement, so the records
        never outlive the message in a non-terminal status.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                WITH exhausted AS (
                    UPDATE file_processing_queue
                    SET status = 'failed', last_error = %s, locked_at = NULL, updated_at = NOW()
                    WHERE queue_name = %s
                      AND status = 'active'
                      AND locked_at < NOW() - make_interval(secs => %s)
                      AND attempts_made >= %s
                    RETURNING job_id
                ), failed_jobs AS (
                    UPDATE jobs
                    SET status = %s, error_message = %s,
                        completed_at = NOW(), updated_at = NOW()
                    WHERE id IN (SELECT job_id FROM exhausted) AND status IN (%s, %s)
                    RETURNING file_id
                ), failed_files AS (
                    UPDATE files
                    SET status = %s, extracted_data = NULL, updated_at = NOW()
                    WHERE id IN (SELECT file_id FROM failed_jobs) AND status IN (%s, %s)
                    RETURNING id
                )
                SELECT job_id FROM exhausted
                """,
                (
                    STALLED_LIMIT_MESSAGE,
                    self._options.name,
                    visibility,
                    self._options.max_attempts,
                    JobStatus.FAILED.value,
                    STALLED_JOB_ERROR,
                    JobStatus.QUEUED.value,
                    JobStatus.PROCESSING.value,
                    FileStatus.FAILED.value,
                    FileStatus.UPLOADED.value,
                    FileStatus.PROCESSING.value,
                ),
            )
            if cur.rowcount:
                Log.warning(f"{cur.rowcount} stalled message(s) exhausted their attempts")

    def _settle(
        self,
        delivery: Delivery,
        action: str,
        query: str,
        params: tuple[object, ...],
    ) -> None:
        with store_errors(f"{action} message {delivery.message_id}"), get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                settled = cur.rowcount > 0
            conn.commit()
        if not settled:
            Log.warning(
                f"Lease on message {delivery.message_id} (attempt {delivery.attempt}) "
                f"was lost before {action}"
            )

    def _ensure_listening(self) -> None:
        if self._listener is not None and not self._listener.closed:
            return
        self._listener = psycopg.connect(self._listen_conninfo, autocommit=True)
        self._listener.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))

    def _wait_for_notification(self, timeout: float) -> None:
        if self._listener is None:
            return
        try:
            for notify in self._listener.notifies(timeout=timeout, stop_after=1):
                Log.debug(f"Woken by notification for job {notify.payload}")
        except psycopg.Error as exc:
            Log.warning(f"Listener connection lost, reconnecting: {exc}")
            self.close()
