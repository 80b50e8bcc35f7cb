import threading
from concurrent.futures import ThreadPoolExecutor

from fileproc.config.settings import Settings
from fileproc.database.exceptions import PersistenceError
from fileproc.logging.logger import Log
from fileproc.queue.base import BaseDispatchQueue
from fileproc.queue.models import Delivery
from fileproc.worker.events import WorkerEvent, WorkerEventKind, WorkerEvents
from fileproc.worker.job_runner import JobOutcome, JobResult, JobRunner

_EVENT_FOR_OUTCOME = {
    JobOutcome.COMPLETED: WorkerEventKind.COMPLETED,
    JobOutcome.FAILED: WorkerEventKind.FAILED,
    JobOutcome.RETRY: WorkerEventKind.RETRYING,
    JobOutcome.SKIPPED: WorkerEventKind.SKIPPED,
}


class Worker:
    """Receive loop: wait -> claim -> dispatch to a bounded pool of job threads."""

    def __init__(
        self,
        queue: BaseDispatchQueue,
        job_runner: JobRunner,
        settings: Settings,
        events: WorkerEvents | None = None,
    ) -> None:
        self._queue = queue
        self._job_runner = job_runner
        self._settings = settings
        self._events = events if events is not None else WorkerEvents()
        self._stopping = threading.Event()

    @property
    def events(self) -> WorkerEvents:
        return self._events

    def run(self, max_jobs: int | None = None) -> None:
        """Main receive loop. Runs until stop() or interrupt.

        If max_jobs is set, stop after dispatching that many jobs (for testing).
        In-flight jobs are always allowed to finish before returning.
        """
        concurrency = max(self._settings.worker_concurrency, 1)
        wait_timeout = self._settings.queue_wait_timeout_seconds
        slots = threading.BoundedSemaphore(concurrency)
        dispatched = 0
        Log.info(f"Worker started, receiving jobs with concurrency {concurrency}")

        with ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="fileproc-job"
        ) as pool:
            try:
                while not self._stopping.is_set():
                    if max_jobs is not None and dispatched >= max_jobs:
                        break
                    if not slots.acquire(timeout=wait_timeout):
                        continue
                    delivery = self._try_receive()
                    if delivery is None:
                        slots.release()
                        continue
                    future = pool.submit(self._execute, delivery)
                    future.add_done_callback(lambda _future: slots.release())
                    dispatched += 1
            except KeyboardInterrupt:
                Log.info("Worker shutting down gracefully")
            Log.info("Waiting for in-flight jobs to finish")
        Log.info("Worker stopped")

    def stop(self) -> None:
        """Ask the loop to stop after the current receive."""
        self._stopping.set()

    def _try_receive(self) -> Delivery | None:
        """Wait for the next delivery. Gracefully handle queue backend errors."""
        try:
            return self._queue.receive(self._settings.queue_wait_timeout_seconds)
        except PersistenceError as exc:
            Log.warning(f"Queue unavailable, will retry: {exc}")
            self._stopping.wait(self._settings.queue_wait_timeout_seconds)
            return None

    def _execute(self, delivery: Delivery) -> None:
        if delivery.stalled:
            self._emit(WorkerEventKind.STALLED, delivery)
        self._emit(WorkerEventKind.ACTIVE, delivery)
        try:
            result = self._job_runner.run(delivery)
        except PersistenceError as exc:
            Log.error(f"Store unavailable during job {delivery.descriptor.job_id}: {exc}")
            result = self._after_crash(delivery, f"PersistenceError: {exc}")
        except Exception as exc:
            Log.exception(f"Unexpected error in job {delivery.descriptor.job_id}: {exc}")
            result = self._after_crash(delivery, f"{type(exc).__name__}: {exc}")
        if result is not None:
            self._settle(delivery, result)

    def _after_crash(self, delivery: Delivery, error: str) -> JobResult | None:
        """Retry while attempts remain; on the last one, fail the job before the message.

        Returns None when the job could not be failed. The message is then left
        active and the exhausted lease is failed by the queue once it expires.
        """
        if not delivery.is_final_attempt:
            return JobResult(JobOutcome.RETRY, error)
        try:
            return self._job_runner.fail_exhausted(delivery, error)
        except PersistenceError as exc:
            Log.error(
                f"Could not fail job {delivery.descriptor.job_id}, leaving message "
                f"{delivery.message_id} to expire: {exc}"
            )
            return None

    def _settle(self, delivery: Delivery, result: JobResult) -> None:
        """Acknowledge, reject or return the message according to the job result."""
        error = result.error or ""
        try:
            if result.outcome is JobOutcome.RETRY:
                self._queue.nack(delivery, error)
            elif result.outcome is JobOutcome.FAILED:
                self._queue.reject(delivery, error)
            else:
                self._queue.ack(delivery)
        except PersistenceError as exc:
            Log.error(
                f"Could not settle message {delivery.message_id}, "
                f"it will be redelivered after its lease expires: {exc}"
            )
        self._emit(_EVENT_FOR_OUTCOME[result.outcome], delivery, result.error)

    def _emit(
        self,
        kind: WorkerEventKind,
        delivery: Delivery,
        error: str | None = None,
    ) -> None:
        self._events.emit(
            WorkerEvent(
                kind=kind,
                job_id=delivery.descriptor.job_id,
                file_id=delivery.descriptor.file_id,
                message_id=delivery.message_id,
                error=error,
            )
        )
