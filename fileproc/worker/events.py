import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fileproc.logging.logger import Log


class WorkerEventKind(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    STALLED = "stalled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkerEvent:
    kind: WorkerEventKind
    job_id: int
    file_id: int
    message_id: int
    error: str | None = None


WorkerEventListener = Callable[[WorkerEvent], None]


class WorkerEvents:
    """Listener set the worker publishes job lifecycle events to.

    Safe to subscribe and emit from multiple threads. A listener that raises
    is logged and skipped, it never affects the job that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: list[WorkerEventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: WorkerEventListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: WorkerEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                Log.warning(f"Worker event listener failed on {event.kind.value}: {exc}")


def log_worker_event(event: WorkerEvent) -> None:
    """Forward worker events to the application log."""
    subject = f"Job {event.job_id} for file {event.file_id}"
    if event.kind is WorkerEventKind.ACTIVE:
        Log.info(f"{subject} started processing")
    elif event.kind is WorkerEventKind.COMPLETED:
        Log.info(f"{subject} completed")
    elif event.kind is WorkerEventKind.FAILED:
        Log.error(f"{subject} failed: {event.error}")
    elif event.kind is WorkerEventKind.RETRYING:
        Log.warning(f"{subject} failed, message {event.message_id} will be retried: {event.error}")
    elif event.kind is WorkerEventKind.STALLED:
        Log.warning(f"{subject} stalled")
    else:
        Log.debug(f"{subject} skipped")
