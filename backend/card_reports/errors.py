"""Error taxonomy shared by the report services."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional


class ReportServiceError(RuntimeError):
    """Raised when a report operation cannot be completed.

    ``operation`` names the failing step and ``context`` carries identifiers
    such as the bucket path so callers can log or retry narrowly.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        prefix = f"[{self.operation}] " if self.operation else ""
        suffix = f" ({details})" if details else ""
        return f"{prefix}{self.message}{suffix}"


class StoreAccessError(ReportServiceError):
    """Raised when the document store cannot be read or written."""


class DocumentNotFoundError(StoreAccessError):
    """Raised when a merge update targets a document that does not exist."""


class ConcurrentUpdateError(ReportServiceError):
    """Raised when optimistic write retries are exhausted."""


class RecalculationValidationError(ValueError):
    """Raised when a recalculation request is rejected before any I/O."""


class InvalidRecordError(ValueError):
    """Raised when a source record payload cannot be aggregated."""


class ConfigurationError(RuntimeError):
    """Raised when thresholds or notification channels are misconfigured."""


class NotificationError(RuntimeError):
    """Raised when the notification transport rejects a message."""


@contextmanager
def error_context(operation: str, **context: Any) -> Iterator[None]:
    """Attach ``operation`` and ``context`` to any failure raised in the block.

    Report errors keep their type and gain the missing context keys;
    configuration errors pass through untouched; any other exception is
    wrapped in :class:`ReportServiceError`.
    """

    try:
        yield
    except ReportServiceError as exc:
        if exc.operation is None:
            exc.operation = operation
        for key, value in context.items():
            exc.context.setdefault(key, value)
        raise
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ReportServiceError(str(exc), operation=operation, context=context) from exc


__all__ = [
    "ConcurrentUpdateError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "InvalidRecordError",
    "NotificationError",
    "RecalculationValidationError",
    "ReportServiceError",
    "StoreAccessError",
    "error_context",
]
