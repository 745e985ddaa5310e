"""Errors reported by the FileJump backend to its host."""


class BackendError(Exception):
    """Base class for all backend errors."""


class ObjectNotFoundError(BackendError):
    """Raised when no file exists at the requested path."""


class DirectoryNotFoundError(BackendError):
    """Raised when a directory in the requested path does not exist."""


class IsDirectoryError(BackendError):
    """Raised when a file was requested but the path names a folder."""


class PreconditionFailedError(BackendError):
    """Raised when an operation cannot start with the given inputs.

    Examples are uploads of unknown size, uploads whose content length does
    not match the declared size, and downloads of an object without an id.
    """


class DirectoryNotEmptyError(BackendError):
    """Raised by rmdir when the directory still has children."""


class ApiStatusError(BackendError):
    """Raised when a 2xx response does not report ``status: success``."""

    def __init__(self, operation: str, status: str, detail: str = "") -> None:
        message = f"{operation} failed: api status {status or 'missing'!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation
        self.status = status


class CantSetModTimeError(BackendError):
    """Raised because FileJump does not allow setting modification times."""


class HashUnsupportedError(BackendError):
    """Raised because FileJump exposes no usable content hash."""


class CantPurgeRootError(BackendError):
    """Raised when rmdir or purge targets the drive root."""
