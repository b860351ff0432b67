"""error taxonomy and the process-wide error reporter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# --- configuration ---

MAX_REPORTED_ERRORS = 100

logger = logging.getLogger(__name__)


class CopilotError(Exception):
    """base for all action response errors."""

    pass


class PayloadEmpty(CopilotError):
    """an action's structured payload is missing or empty."""

    pass


class AssetFetchError(CopilotError):
    """a remote asset could not be retrieved or decoded."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"failed to fetch {_shorten(url)}: {reason}")


class ConversionError(CopilotError):
    """converting raw ai text into document blocks failed."""

    pass


class MutationError(CopilotError):
    """the document store rejected a transaction."""

    pass


class TransactionError(CopilotError):
    """transaction used outside its open state."""

    pass


class SchedulingError(CopilotError):
    """a continuation was requested with no running event loop."""

    pass


@dataclass
class ReportedError:
    error: BaseException
    context: str
    reported_at: str = field(default_factory=lambda: datetime.now().isoformat())


class ErrorReporter:
    """sink for failures of background stages.

    logs every error and keeps the most recent ones for inspection.
    """

    def __init__(self, max_errors: int = MAX_REPORTED_ERRORS):
        self.max_errors = max_errors
        self.errors: list[ReportedError] = []

    def report(self, error: BaseException, context: str = "") -> None:
        logger.error(
            "%s failed: %s", context or "background task", error,
            exc_info=(type(error), error, error.__traceback__),
        )
        self.errors.append(ReportedError(error=error, context=context))
        if len(self.errors) > self.max_errors:
            self.errors.pop(0)

    @property
    def last(self) -> Optional[ReportedError]:
        return self.errors[-1] if self.errors else None

    def clear(self) -> None:
        self.errors.clear()


_reporter: Optional[ErrorReporter] = None


def get_reporter() -> ErrorReporter:
    """get the process-wide reporter."""
    global _reporter
    if _reporter is None:
        _reporter = ErrorReporter()
    return _reporter


def _shorten(url: str, max_len: int = 80) -> str:
    # data urls can be megabytes long
    if len(url) <= max_len:
        return url
    return url[:max_len - 3] + "..."
