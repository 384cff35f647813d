"""Exception hierarchy of the document index.

ValidationError      — bad input, never retried.
UpstreamError        — embedding provider, vector store or relational store failed;
                       safe to retry the whole call since every write is idempotent by id.
NotFoundError        — a tenant-scoped lookup matched nothing.
ConsistencyWarning   — logged (never raised) when reconciliation repairs drift.
"""

from typing import Any

from shared.clients.rag.models.Batch import BatchReport


class DocumentIndexException(Exception):
    """Base class for all document index errors.

    Args:
        message (str): Human-readable error message.
        detail (dict | None): Structured context (operation, batch index, ...).
        original (Exception | None): The exception that caused this one.
    """

    retryable: bool = False
    status_code: int = 500

    def __init__(self, message: str, detail: dict[str, Any] | None = None, original: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        self.original = original

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "detail": self.detail,
            "retryable": self.retryable,
            "original": repr(self.original) if self.original else None,
        }


class ValidationError(DocumentIndexException):
    status_code = 400


class NotFoundError(DocumentIndexException):
    status_code = 404


class DimensionMismatchError(DocumentIndexException):
    """An embedding does not have the configured dimension. Fatal, never retried."""

    def __init__(self, expected: int, actual: int, chunk_index: int | None = None) -> None:
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}.",
            detail={"expected": expected, "actual": actual, "chunk_index": chunk_index},
        )
        self.expected = expected
        self.actual = actual
        self.chunk_index = chunk_index


class ResultCeilingError(DocumentIndexException):
    """A "fetch everything" query filled its whole ceiling, so the result may be truncated."""

    def __init__(self, ceiling: int, operation: str) -> None:
        super().__init__(
            f"Query for '{operation}' returned {ceiling} matches, which is the query ceiling. Refusing to truncate.",
            detail={"ceiling": ceiling, "operation": operation},
        )
        self.ceiling = ceiling


class UpstreamError(DocumentIndexException):
    retryable = True
    status_code = 502


class EmbeddingError(UpstreamError):
    def __init__(self, message: str, chunk_index: int | None = None, original: Exception | None = None) -> None:
        super().__init__(message, detail={"chunk_index": chunk_index}, original=original)
        self.chunk_index = chunk_index


class VectorStoreError(UpstreamError):
    """A vector store call failed.

    Carries the attempted operation, the index of the (first) failed batch and,
    for batched writes and deletes, the full BatchReport so that partial success
    stays observable.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        batch_index: int | None = None,
        report: BatchReport | None = None,
        original: Exception | None = None,
    ) -> None:
        detail: dict[str, Any] = {"operation": operation, "batch_index": batch_index}
        if report is not None:
            detail["report"] = report.model_dump()
        super().__init__(message, detail=detail, original=original)
        self.operation = operation
        self.batch_index = batch_index
        self.report = report


class RelationalStoreError(UpstreamError):
    def __init__(self, message: str, operation: str, original: Exception | None = None) -> None:
        super().__init__(message, detail={"operation": operation}, original=original)
        self.operation = operation


class ConsistencyWarning(Warning):
    """Reconciliation found (and repaired) drift between relational and document state."""
