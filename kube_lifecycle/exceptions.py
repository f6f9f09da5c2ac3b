"""Exceptions related to kube-lifecycle."""

from collections.abc import Sequence
from typing import Any

__all__ = [
    "KubeLifecycleException",
    "InputException",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "RetryExhaustedError",
    "FieldAccessError",
    "PathNotFoundError",
    "TypeMismatchError",
    "OperationCancelledError",
    "TransportError",
]


class KubeLifecycleException(Exception):
    """Generic base exception used for this library."""


class InputException(KubeLifecycleException):
    """Raised when records or values are not formatted as expected."""


class NotFoundError(KubeLifecycleException):
    """Raised when the requested object does not exist in the store."""

    def __init__(self, resource_id: Any) -> None:
        super().__init__(f"{resource_id} not found")
        self.resource_id = resource_id


class AlreadyExistsError(KubeLifecycleException):
    """Raised when creating an object whose identity is already taken."""

    def __init__(self, resource_id: Any) -> None:
        super().__init__(f"{resource_id} already exists")
        self.resource_id = resource_id


class ConflictError(KubeLifecycleException):
    """Raised when an update carries a stale resourceVersion.

    This is recoverable: fetch the object again and re-apply the change.
    """

    def __init__(
        self,
        resource_id: Any,
        submitted_version: str | None = None,
        current_version: str | None = None,
    ) -> None:
        message = f"Operation cannot be fulfilled on {resource_id}: the object has been modified"
        if submitted_version is not None and current_version is not None:
            message += f" (submitted resourceVersion {submitted_version}, current {current_version})"
        super().__init__(message)
        self.resource_id = resource_id
        self.submitted_version = submitted_version
        self.current_version = current_version


class RetryExhaustedError(KubeLifecycleException):
    """Raised when a retriable error persisted past the retry budget.

    This is intentionally not a ConflictError so callers can tell a single
    collision apart from giving up.
    """

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class FieldAccessError(KubeLifecycleException):
    """Base class for errors addressing a field inside a document."""

    def __init__(self, path: Sequence[str], message: str) -> None:
        super().__init__(f"{format_path(path)}: {message}")
        self.path = tuple(path)


class PathNotFoundError(FieldAccessError):
    """Raised when a segment of a field path does not exist."""


class TypeMismatchError(FieldAccessError):
    """Raised when a node has a different kind than the caller expected."""

    def __init__(self, path: Sequence[str], expected: str, actual: str) -> None:
        super().__init__(path, f"expected {expected} but was {actual}")
        self.expected = expected
        self.actual = actual


class OperationCancelledError(KubeLifecycleException):
    """Raised when the caller cancelled an operation or its deadline expired."""


class TransportError(KubeLifecycleException):
    """Raised for failures talking to the store not covered by other errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def format_path(path: Sequence[str]) -> str:
    """Render a field path for error messages."""
    if not path:
        return "<root>"
    return ".".join(path)
