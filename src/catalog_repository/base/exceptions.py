class RepositoryError(Exception):
    """Base class for every error raised by the catalog repository layer."""

    def __init__(self, message: str = "A repository error occurred."):
        super().__init__(message)


class NotFoundError(RepositoryError):
    """Exception raised when an object with the specified identifier does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class ConfigurationError(RepositoryError, ValueError):
    """Exception raised when a filter, sort or patch cannot be turned into SQL."""

    def __init__(self, message: str = "Invalid query configuration."):
        super().__init__(message)


class StorageError(RepositoryError):
    """Exception raised when the storage engine rejects or fails a statement."""

    def __init__(self, message: str = "The storage engine reported an error."):
        super().__init__(message)


class KeyAlreadyExistsError(StorageError):
    """Exception raised when trying to insert an entity that would violate a unique constraint."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)


class ConsistencyWarning(UserWarning):
    """An id returned by a filter query could not be re-read afterwards."""
