"""Exception hierarchy for netkeeper.

Errors inside the monitoring loop are logged and absorbed; only
``ConfigurationError`` is allowed to stop the process, and only before the
loop starts.
"""

import logging
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """How loudly an error should be reported."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def log_level(self) -> int:
        return logging.getLevelName(self.name)


class NetkeeperError(Exception):
    """Base exception for all netkeeper errors.

    Attributes:
        message: Human-readable error message
        details: Additional context as key-value pairs
        cause: Underlying exception, if any
    """

    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({context})"

    def to_dict(self) -> dict[str, Any]:
        """Structured form, passed to the JSON log formatter via ``extra``."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
        }


class ConfigurationError(NetkeeperError):
    """Config file missing, unreadable or failing validation.

    Always fatal: the monitor never starts with a bad config.
    """

    severity = ErrorSeverity.CRITICAL


class NetworkError(NetkeeperError):
    """nmcli failed, timed out, or was given an invalid SSID or password."""


class BrowserError(NetkeeperError):
    """Playwright or Chromium could not be started."""

    severity = ErrorSeverity.CRITICAL
