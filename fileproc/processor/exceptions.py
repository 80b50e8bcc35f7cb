class ProcessorError(Exception):
    """Base exception for all processing errors.

    `category` names the failure class stored on the job, `retryable` tells the
    worker whether another delivery attempt may succeed.
    """

    category = "ProcessingError"
    retryable = True

    def describe(self) -> str:
        return f"{self.category}: {self}"


class FileRecordNotFoundError(ProcessorError):
    """Raised when the file referenced by a job does not exist in the database."""

    category = "NotFoundError"
    retryable = False

    def __init__(self, message: str = "File not found") -> None:
        super().__init__(message)

    def describe(self) -> str:
        return f"{self.category}: File not found"


class FileStateConflictError(ProcessorError):
    """Raised when a file cannot start processing from its current status."""

    category = "ConflictError"
    retryable = False


class StorageIOError(ProcessorError):
    """Raised when file content cannot be read from or written to storage."""

    category = "IOError"


class CompressionError(ProcessorError):
    """Raised when the compressor rejects the input."""

    category = "CompressionError"
