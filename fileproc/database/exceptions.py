class PersistenceError(Exception):
    """Raised when the persistent store cannot be read or written.

    Treated as catastrophic by the worker: the current delivery is negatively
    acknowledged so the queue redelivers it.
    """


class StaleStateError(Exception):
    """Raised when a guarded status update matched no row.

    Another execution already moved the record past the expected status.
    """
