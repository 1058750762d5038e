"""
Exception hierarchy for the clinical index.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across indexing and retrieval
"""

from typing import Any


class ClinicalIndexException(Exception):
    """Base exception for all clinical index errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(ClinicalIndexException):
    """Raised when a chunk or query fails validation."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DimensionMismatchError(ClinicalIndexException):
    """Raised when a vector length differs from the index dimension."""

    def __init__(
        self,
        expected: int,
        actual: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize dimension mismatch error.

        Args:
            expected: Dimension the index was initialised with
            actual: Dimension of the offending vector
            details: Additional context
        """
        details = details or {}
        details.update({"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}", details
        )


class StoreWriteError(ClinicalIndexException):
    """Raised when a write to one of the backing stores fails."""

    def __init__(
        self,
        message: str,
        store: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize store write error.

        Args:
            message: Error message
            store: Store that rejected the write (vector_store, metadata_store, ...)
            details: Additional context
        """
        details = details or {}
        if store:
            details["store"] = store
        self.store = store
        super().__init__(message, details)


class NotFoundError(ClinicalIndexException):
    """Raised when a referenced artifact or chunk does not exist."""

    def __init__(
        self,
        resource: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize not found error.

        Args:
            resource: Kind of resource (artifact, chunk, ...)
            resource_id: ID of the missing resource
            details: Additional context
        """
        details = details or {}
        details[f"{resource}_id"] = resource_id
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"No chunks found for {resource}: {resource_id}", details)


class EmbeddingError(ClinicalIndexException):
    """Raised when embedding generation fails or returns malformed vectors."""

    pass


class VectorStoreError(ClinicalIndexException):
    """Raised when vector store operations fail."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize vector store error.

        Args:
            message: Error message
            operation: Operation that failed (add, search, save, load)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class CacheSnapshotError(ClinicalIndexException):
    """Raised when a persisted cache or keyword snapshot cannot be read."""

    pass


class RetrievalError(ClinicalIndexException):
    """Raised when retrieval operations fail."""

    def __init__(
        self,
        message: str,
        query_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize retrieval error.

        Args:
            message: Error message
            query_id: Query ID for the failed retrieval
            details: Additional context
        """
        details = details or {}
        if query_id:
            details["query_id"] = query_id
        super().__init__(message, details)
