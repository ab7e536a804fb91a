"""Core exception hierarchy for ctxfs.

All ctxfs exceptions inherit from :class:`CtxFSError`. Two branches matter
to callers:

- :class:`FileSystemError` is a *domain* error. It is raised inside a worker
  while an operation runs and travels back to the caller through the
  operation's :class:`~ctxfs.kernel.dispatch.Completion`, exactly like a
  successful value would.
- :class:`ContextError` is a *programming fault*. It is raised synchronously
  at the call site, before anything is dispatched, and never travels through
  a Completion.
"""

from __future__ import annotations

import errno
from enum import StrEnum

# ============================================================================
# Base Exception
# ============================================================================


class CtxFSError(Exception):
    """Base exception for all ctxfs errors.

    Catch this to handle every ctxfs-specific exception.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(CtxFSError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("worker_pool", "max_workers must be an integer")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(CtxFSError):
    """Raised when a configuration value fails validation.

    Examples
    --------
    Example usage::

        raise ValidationError("max_workers", "must be at least 1", value=0)
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Filesystem (domain) Errors
# ============================================================================


class ErrorKind(StrEnum):
    """Closed set of domain error kinds reported by filesystem operations."""

    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    NOT_EMPTY = "not_empty"
    NOT_A_LINK = "not_a_link"
    NOT_SUPPORTED = "not_supported"
    PERMISSION_DENIED = "permission_denied"
    INVALID_ARGUMENT = "invalid_argument"
    HANDLE_CLOSED = "handle_closed"
    IO_ERROR = "io_error"


class FileSystemError(CtxFSError):
    """A filesystem operation failed.

    Delivered through the operation's Completion, never raised on a worker
    thread into the pool.

    Examples
    --------
    Example usage::

        raise FileSystemError(ErrorKind.NOT_FOUND, "Cannot delete file", "/tmp/x")
    """

    def __init__(self, kind: ErrorKind, message: str, path: str | None = None) -> None:
        """Initialize filesystem error.

        Args
        ----
            kind: Domain error kind
            message: Human-readable description
            path: Path the operation was acting on (optional)
        """
        msg = f"{message}: {path}" if path is not None and path not in message else message
        super().__init__(msg)
        self.kind = kind
        self.message = message
        self.path = path


_ERRNO_KINDS: dict[int, ErrorKind] = {
    errno.EEXIST: ErrorKind.ALREADY_EXISTS,
    errno.ENOENT: ErrorKind.NOT_FOUND,
    errno.ENOTDIR: ErrorKind.NOT_FOUND,
    errno.ENOTEMPTY: ErrorKind.NOT_EMPTY,
    errno.EXDEV: ErrorKind.NOT_SUPPORTED,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
    errno.EROFS: ErrorKind.PERMISSION_DENIED,
    errno.EINVAL: ErrorKind.INVALID_ARGUMENT,
    errno.EISDIR: ErrorKind.INVALID_ARGUMENT,
    errno.EBADF: ErrorKind.HANDLE_CLOSED,
}


def kind_for_errno(code: int | None) -> ErrorKind:
    """Return the domain error kind for an OS ``errno`` value."""
    if code is None:
        return ErrorKind.IO_ERROR
    return _ERRNO_KINDS.get(code, ErrorKind.IO_ERROR)


def from_os_error(
    exc: OSError,
    message: str | None = None,
    *,
    kind: ErrorKind | None = None,
    path: str | None = None,
) -> FileSystemError:
    """Translate an :class:`OSError` into a :class:`FileSystemError`.

    Parameters
    ----------
    exc : OSError
        The platform error
    message : str | None
        Replacement message; defaults to the OS ``strerror``
    kind : ErrorKind | None
        Force a kind instead of deriving it from ``exc.errno``
    path : str | None
        Path to report; defaults to ``exc.filename``

    Returns
    -------
    FileSystemError
        The domain error, with ``exc`` attached as ``__cause__``
    """
    if path is None and isinstance(exc.filename, str):
        path = exc.filename
    error = FileSystemError(
        kind or kind_for_errno(exc.errno),
        message or exc.strerror or str(exc),
        path,
    )
    error.__cause__ = exc
    return error


# ============================================================================
# Context Errors (synchronous programming faults)
# ============================================================================


class ContextError(CtxFSError):
    """Base class for execution-context faults.

    These indicate a caller bug rather than an environmental failure: they
    are raised at the call site and are never retried or delivered through a
    Completion.
    """

    pass


class ContextViolationError(ContextError):
    """A file handle was used from a context other than the one that opened it."""

    def __init__(self, owner: str, caller: str) -> None:
        super().__init__(
            f"File handle owned by context '{owner}' used from context '{caller}'"
        )
        self.owner = owner
        self.caller = caller


class NoContextError(ContextError):
    """No execution context could be resolved for the caller."""

    pass


# ============================================================================
# Dispatch Errors
# ============================================================================


class CompletionError(CtxFSError):
    """A Completion was fulfilled more than once."""

    pass


class WorkerPoolClosedError(CtxFSError):
    """Work was submitted to a worker pool that has been shut down."""

    pass


__all__ = [
    "CompletionError",
    "ConfigurationError",
    "ContextError",
    "ContextViolationError",
    "CtxFSError",
    "ErrorKind",
    "FileSystemError",
    "NoContextError",
    "ValidationError",
    "WorkerPoolClosedError",
    "from_os_error",
    "kind_for_errno",
]
