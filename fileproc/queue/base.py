from abc import ABC, abstractmethod

from fileproc.queue.models import Delivery, JobDescriptor


class BaseDispatchQueue(ABC):
    """Contract for the at-least-once channel between producer and workers."""

    @abstractmethod
    def enqueue(self, descriptor: JobDescriptor) -> int:
        """Publish a job descriptor and return the message ID."""

    @abstractmethod
    def receive(self, timeout: float) -> Delivery | None:
        """Claim the next deliverable message.

        Suspends for at most `timeout` seconds while the queue is empty and
        returns None if nothing arrived. A claimed message is invisible to
        other workers until acknowledged or until its lease expires.

        Raises:
            PersistenceError: if the queue backend is unreachable.
        """

    @abstractmethod
    def ack(self, delivery: Delivery) -> None:
        """Acknowledge a successfully handled message."""

    @abstractmethod
    def reject(self, delivery: Delivery, error: str) -> None:
        """Acknowledge a message whose job failed terminally. Never redelivered."""

    @abstractmethod
    def nack(self, delivery: Delivery, error: str) -> None:
        """Return a message for redelivery after backoff.

        Once all attempts are used the message is treated as rejected.
        """

    def close(self) -> None:
        """Release backend resources."""
