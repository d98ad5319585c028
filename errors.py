class ValidationError(ValueError):
    pass


class NotFound(ValueError):
    pass


class AlreadyExists(ValueError):
    pass


class StoreIOError(RuntimeError):
    """Raised when the underlying record store rejects an operation."""
