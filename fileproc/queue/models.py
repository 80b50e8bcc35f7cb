from dataclasses import dataclass


@dataclass(frozen=True)
class JobDescriptor:
    """Queue message payload: just enough identity to rehydrate File and Job."""

    file_id: int
    job_id: int
    owner_id: int


@dataclass(frozen=True)
class QueueOptions:
    """Delivery policy: attempts, exponential backoff, and retention."""

    name: str = "fileProcessing"
    max_attempts: int = 3
    backoff_delay_ms: int = 1000
    remove_on_complete: bool = True
    remove_on_fail: bool = False
    visibility_timeout_seconds: int = 300

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before redelivering after the given (1-based) attempt."""
        return self.backoff_delay_ms * 2 ** (max(attempt, 1) - 1) / 1000


@dataclass(frozen=True)
class Delivery:
    """One claimed message. `attempt` also acts as the lease token."""

    message_id: int
    descriptor: JobDescriptor
    attempt: int
    max_attempts: int
    stalled: bool = False

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts
