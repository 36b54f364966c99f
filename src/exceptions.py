"""Custom exception hierarchy for AutoSpread.

Every exception carries a context dictionary (URL, key, stage, plate) so that
log records emitted for recoverable failures contain enough detail to trace a
coverage gap back to the listing that caused it.

Only configuration, logging initialization and export errors are fatal.
Navigation, valuation and correlation errors are caught per listing and
logged.
"""

from datetime import UTC, datetime
from typing import Any


class AutoSpreadError(Exception):
    """Base exception for all AutoSpread errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class BrowserInitializationError(AutoSpreadError):
    """Raised when the browser instance fails to initialize."""

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class NavigationError(AutoSpreadError):
    """Raised when fetching an index or listing page fails.

    Includes the target URL and HTTP status (when one was received).
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class ValuationError(AutoSpreadError):
    """Raised when a registry or valuation lookup fails.

    Attributes:
        stage: Which lookup failed ("registry" or "valuation").
        plate: Registration plate the lookup was made for.
        reason: Short failure description.
    """

    def __init__(self, stage: str, plate: str, reason: str, url: str | None = None) -> None:
        super().__init__(
            message=f"{stage.capitalize()} lookup for '{plate}' failed: {reason}",
            context={"stage": stage, "plate": plate, "reason": reason, "url": url},
        )
        self.stage = stage
        self.plate = plate
        self.reason = reason


class ValuationTimeoutError(ValuationError):
    """Raised when a valuation API call exceeds its timeout."""

    def __init__(self, stage: str, plate: str, timeout_sec: float, url: str | None = None) -> None:
        super().__init__(
            stage=stage,
            plate=plate,
            reason=f"timed out after {timeout_sec}s",
            url=url,
        )


class ValuationResponseError(ValuationError):
    """Raised on a non-2xx status or a payload that does not match its schema."""


class CorrelationError(AutoSpreadError):
    """Raised when an event cannot be correlated with a listing record."""


class DuplicateKeyError(CorrelationError):
    """Raised when a record is created for a key that already exists."""

    def __init__(self, key: str) -> None:
        super().__init__(
            message=f"Record '{key}' already exists",
            context={"key": key},
        )
        self.key = key


class UnknownKeyError(CorrelationError):
    """Raised when an update targets a key that was never created."""

    def __init__(self, key: str, fields: list[str]) -> None:
        super().__init__(
            message=f"Update for unknown record '{key}'",
            context={"key": key, "fields": fields},
        )
        self.key = key
        self.fields = fields


class ExportError(AutoSpreadError):
    """Raised when an export file cannot be written.

    This is the only error raised after the crawl that ends the process.
    """

    def __init__(self, export_type: str, reason: str, output_path: str | None = None) -> None:
        super().__init__(
            message=f"Failed to export {export_type}: {reason}",
            context={"export_type": export_type, "reason": reason, "output_path": output_path},
        )


class LoggingInitializationError(AutoSpreadError):
    """Raised when the logging system fails to initialize."""

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
