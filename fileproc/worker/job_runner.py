from dataclasses import dataclass
from enum import Enum

from fileproc.config.settings import Settings
from fileproc.database.exceptions import StaleStateError
from fileproc.logging.logger import Log
from fileproc.processor.exceptions import (
    CompressionError,
    FileRecordNotFoundError,
    FileStateConflictError,
    ProcessorError,
)
from fileproc.processor.processor import Processor
from fileproc.queue.models import Delivery
from fileproc.worker.transitions import JobTransitions


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class JobResult:
    outcome: JobOutcome
    error: str | None = None


class JobRunner:
    """Run one delivery through the job state machine.

    queued -> processing -> completed | failed. Engine errors end up on the
    job record; only PersistenceError escapes, so the delivery is redelivered.
    """

    def __init__(
        self,
        processor: Processor,
        transitions: JobTransitions,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._transitions = transitions
        self._settings = settings

    def run(self, delivery: Delivery) -> JobResult:
        """Execute a single delivery with error handling."""
        descriptor = delivery.descriptor
        Log.info(
            f"Running job {descriptor.job_id} for file {descriptor.file_id} "
            f"(attempt {delivery.attempt}/{delivery.max_attempts})"
        )

        job = self._transitions.load_job(descriptor.job_id)
        if job is None:
            Log.warning(f"Job {descriptor.job_id} not found, dropping message")
            return JobResult(JobOutcome.SKIPPED)
        if job.is_terminal:
            Log.info(f"Job {job.id} already {job.status.value}, skipping redelivery")
            return JobResult(JobOutcome.SKIPPED)

        if job.file_id != descriptor.file_id:
            Log.warning(
                f"Message for job {job.id} names file {descriptor.file_id}, "
                f"using the job's file {job.file_id}"
            )

        try:
            file = self._transitions.start(job.id, job.file_id)
        except StaleStateError:
            Log.info(f"Job {job.id} was settled concurrently, skipping")
            return JobResult(JobOutcome.SKIPPED)
        except (FileRecordNotFoundError, FileStateConflictError) as exc:
            Log.error(f"Job {job.id} cannot start: {exc}")
            return self._fail(job.id, None, exc.describe())
        Log.info(f"Job {job.id} and file {file.id} marked as processing")

        try:
            metadata = self._processor.process(file, job.id)
        except ProcessorError as exc:
            return self._handle_failure(delivery, job.id, file.id, exc)

        try:
            self._transitions.complete(job.id, file.id, metadata)
        except StaleStateError:
            Log.warning(f"Job {job.id} was settled by another execution, result discarded")
            return JobResult(JobOutcome.SKIPPED)
        Log.info(f"Job {job.id} completed successfully")
        return JobResult(JobOutcome.COMPLETED)

    def fail_exhausted(self, delivery: Delivery, error: str) -> JobResult:
        """Fail the job of a delivery whose last attempt crashed.

        The file is taken from the job record. PersistenceError propagates,
        the message must then stay unsettled so its lease can expire.
        """
        job_id = delivery.descriptor.job_id
        try:
            self._transitions.abandon(job_id, error)
        except StaleStateError:
            Log.info(f"Job {job_id} was already settled, dropping message")
            return JobResult(JobOutcome.SKIPPED)
        Log.error(
            f"Job {job_id} permanently failed after {delivery.attempt} attempts: {error}"
        )
        return JobResult(JobOutcome.FAILED, error)

    def is_retryable(self, exc: ProcessorError) -> bool:
        if isinstance(exc, CompressionError):
            return self._settings.compression_errors_retryable
        return exc.retryable

    def _handle_failure(
        self,
        delivery: Delivery,
        job_id: int,
        file_id: int,
        exc: ProcessorError,
    ) -> JobResult:
        """Defer retryable errors while attempts remain, otherwise fail for good."""
        message = exc.describe()
        Log.error(f"Job {job_id} failed on attempt {delivery.attempt}: {message}")
        if self.is_retryable(exc) and not delivery.is_final_attempt:
            try:
                self._transitions.defer(job_id, message)
            except StaleStateError:
                return JobResult(JobOutcome.SKIPPED)
            Log.warning(f"Job {job_id} will be retried")
            return JobResult(JobOutcome.RETRY, message)
        return self._fail(job_id, file_id, message)

    def _fail(self, job_id: int, file_id: int | None, message: str) -> JobResult:
        try:
            self._transitions.fail(job_id, file_id, message)
        except StaleStateError:
            Log.info(f"Job {job_id} was settled concurrently, skipping")
            return JobResult(JobOutcome.SKIPPED)
        Log.error(f"Job {job_id} permanently failed: {message}")
        return JobResult(JobOutcome.FAILED, message)
