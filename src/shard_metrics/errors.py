"""
Error types for the shard metrics store.

Every failure inside the store is logged once at the point of detection and
then raised to the caller as one of the typed errors below. The original
driver exception stays reachable through ``__cause__``.
"""

from __future__ import annotations

from typing import Any


class MetricsStoreError(Exception):
    """
    Base exception class for shard metrics store errors.

    Attributes:
        error_code: Internal error code string (e.g., "persistence_failed",
            "retrieval_failed", "invalid_argument").
        message: Human-readable error message.
        details: Optional structured details (e.g., shard id, window size).

    Example:
        >>> raise MetricsStoreError(
        ...     error_code="retrieval_failed",
        ...     message="Failed to get historical metrics",
        ...     details={"shard_id": 3},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a MetricsStoreError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class PersistenceError(MetricsStoreError):
    """
    Error raised when the store rejects a write.

    Covers constraint violations, connection loss, pool exhaustion and
    timeouts on the write path, as well as schema setup failures.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a PersistenceError."""
        super().__init__(
            error_code="persistence_failed", message=message, details=details
        )


class RetrievalError(MetricsStoreError):
    """
    Error raised when a read against the store fails.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a RetrievalError."""
        super().__init__(
            error_code="retrieval_failed", message=message, details=details
        )


class InvalidArgumentError(MetricsStoreError):
    """Error raised for malformed snapshot input."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )
