import signal
from types import FrameType

from fileproc.config.settings import Settings
from fileproc.database.connection import build_conninfo, close_pool, init_pool
from fileproc.database.repositories.file_repository import FileRepository
from fileproc.database.repositories.job_repository import JobRepository
from fileproc.logging.logger import Log
from fileproc.processor.processor import build_processor
from fileproc.queue.models import QueueOptions
from fileproc.queue.postgres_queue import PostgresDispatchQueue
from fileproc.worker.events import WorkerEvents, log_worker_event
from fileproc.worker.job_runner import JobRunner
from fileproc.worker.transitions import JobTransitions
from fileproc.worker.worker import Worker


def build_queue(settings: Settings) -> PostgresDispatchQueue:
    """Build the dispatch queue from settings."""
    options = QueueOptions(
        name=settings.queue_name,
        max_attempts=settings.queue_max_attempts,
        backoff_delay_ms=settings.queue_backoff_delay_ms,
        remove_on_complete=settings.queue_remove_on_complete,
        remove_on_fail=settings.queue_remove_on_fail,
        visibility_timeout_seconds=settings.queue_visibility_timeout_seconds,
    )
    return PostgresDispatchQueue(options, listen_conninfo=build_conninfo(settings))


def build_worker(settings: Settings, queue: PostgresDispatchQueue) -> Worker:
    """Wire processor, transitions, runner and event logging into a Worker."""
    transitions = JobTransitions(JobRepository(), FileRepository())
    job_runner = JobRunner(build_processor(settings), transitions, settings)
    events = WorkerEvents()
    events.subscribe(log_worker_event)
    return Worker(queue, job_runner, settings, events)


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    queue = build_queue(settings)

    try:
        worker = build_worker(settings, queue)

        def _handle_sigterm(_signum: int, _frame: FrameType | None) -> None:
            Log.info("SIGTERM received, stopping worker")
            worker.stop()

        signal.signal(signal.SIGTERM, _handle_sigterm)
        worker.run()
    finally:
        queue.close()
        close_pool()


if __name__ == "__main__":
    main()
