"""
Custom exceptions for the ingestion pipeline with structured error context.

Every failure the pipeline can observe maps onto one of these classes, and
the class decides what happens next: retryable errors are absorbed by the
fetch and write loops, everything else ends the run.

Exception Hierarchy:
    IngestionError (base)
    ├── FetchError
    │   ├── RateLimitError        (retryable, server-directed wait)
    │   ├── StaleCursorError      (resettable, restart the cursor chain)
    │   ├── TransientFetchError   (retryable, exponential backoff)
    │   └── FatalFetchError       (non-retryable)
    ├── LoadError
    │   ├── BulkLoadError         (recovered by the chunked fallback)
    │   └── FallbackLoadError     (no further degradation path)
    ├── CheckpointError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IngestionError(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (cursor, status code, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    @property
    def retryable(self) -> bool:
        return isinstance(self, RetryableError)

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]

        details = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if details:
            parts.append("Context: " + ", ".join(f"{k}={v}" for k, v in details.items()))

        if self.original_exception is not None:
            cause = self.original_exception
            parts.append(f"Caused by: {type(cause).__name__}: {cause}")

        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "original_error": repr(self.original_exception) if self.original_exception else None,
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionError):
    """
    Mixin for errors the pipeline recovers from on its own.

    Retryable errors never reach the orchestrator: the loop that owns the
    failing call waits and tries again.
    """
    pass


class NonRetryableError(IngestionError):
    """Mixin for errors that must terminate the pipeline."""
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(IngestionError):
    """Base exception for remote event API failures."""
    pass


class RateLimitError(RetryableError, FetchError):
    """HTTP 429. The same page is requested again once the wait has passed."""

    def __init__(
        self,
        message: str,
        retry_after: float,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        self.context["retry_after"] = retry_after


class StaleCursorError(RetryableError, FetchError):
    """
    The API rejected a cursor whose TTL expired (HTTP 400).

    Not a data-loss event: the cursor chain restarts from the beginning and
    replayed ids are deduplicated on insert.
    """

    def __init__(
        self,
        message: str,
        cursor: Optional[str],
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.cursor = cursor
        self.context["cursor"] = cursor


class TransientFetchError(RetryableError, FetchError):
    """
    Gateway errors (HTTP 5xx) and network failures.

    ``attempt`` counts consecutive transient failures, starting at 1, and
    drives the caller's exponential backoff.
    """

    def __init__(
        self,
        message: str,
        attempt: int,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.attempt = attempt
        self.status_code = status_code
        self.context["attempt"] = attempt
        if status_code is not None:
            self.context["status_code"] = status_code


class FatalFetchError(NonRetryableError, FetchError):
    """Any response the fetcher cannot classify as retryable."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(IngestionError):
    """Base exception for event persistence failures."""
    pass


class BulkLoadError(LoadError):
    """
    The staged COPY path failed and was rolled back.

    Context should include:
        - batch_size: Number of events in the batch
        - stage: Step that failed (stage, copy, merge)
    """
    pass


class FallbackLoadError(LoadError):
    """
    A chunk of the row-insert fallback failed.

    Context should include:
        - chunk_index: Index of the failing chunk
        - chunk_size: Number of events in the chunk
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(IngestionError):
    """
    Exception raised when reading or writing the ingestion checkpoint fails.

    Context should include:
        - operation: Operation that failed (initialize, read, save)
        - cursor: Cursor being saved (for save operations)
    """
    pass
