"""Error taxonomy for the price extraction pipeline.

- Transport failures are retried by the navigation engine and degrade to
  "page unreachable"
- Extraction misses are results, not errors
- Storage failures degrade to cache miss / rate-limit allow
- Configuration errors are fatal at the boundary that needs them
"""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any, Dict, Optional
from datetime import datetime

from pydantic import BaseModel, Field


class ErrorSeverity(str, Enum):
    """Error severity levels for prioritized handling."""
    CRITICAL = "critical"  # Service cannot run
    HIGH = "high"          # Component degraded
    MEDIUM = "medium"      # Recoverable, retry possible
    LOW = "low"            # Expected on adversarial targets


class ErrorCategory(str, Enum):
    """Error categories used for retry decisions and metrics labels."""
    BLOCKED = "blocked"              # net::ERR_BLOCKED_BY_CLIENT and friends
    NETWORK = "network"              # DNS, refused, reset, TLS
    TIMEOUT = "timeout"              # Navigation or selector timeouts
    BROWSER = "browser"              # Crashed or disconnected browser
    STORAGE = "storage"              # Redis unreachable
    CONFIGURATION = "configuration"  # Missing credentials, bad settings
    UNKNOWN = "unknown"


BLOCKED_BY_CLIENT_MARKERS = ("err_blocked_by_client", "blocked_by_client")

NETWORK_MARKERS = (
    "net::err_name_not_resolved",
    "net::err_connection",
    "net::err_address_unreachable",
    "net::err_ssl",
    "net::err_cert",
    "net::err_aborted",
    "net::err_internet_disconnected",
    "connection refused",
    "connection reset",
)

BROWSER_MARKERS = ("target closed", "browser has been closed", "disconnected", "crashed")


class ErrorContext(BaseModel):
    """Error context carried for logging."""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    url: Optional[str] = None
    business: Optional[str] = None
    attempt_number: int = 1
    max_attempts: int = 1
    traceback: Optional[str] = None


class EnhancedError(Exception):
    """Base error with category, severity and context."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause

        if not self.context.traceback and cause:
            self.context.traceback = ''.join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "context": self.context.model_dump(mode="json"),
            "cause": str(self.cause) if self.cause else None
        }


class BrowserError(EnhancedError):
    """Browser launch or page creation failures."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.BROWSER,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


class ConfigurationError(EnhancedError):
    """Missing credentials or invalid settings."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


def is_blocked_by_client(error: BaseException) -> bool:
    """True when the browser refused the request itself (ad-block style)."""
    error_str = str(error).lower()
    return any(marker in error_str for marker in BLOCKED_BY_CLIENT_MARKERS)


def classify_error(error: BaseException) -> ErrorCategory:
    """Map a raw exception onto an ErrorCategory."""
    if isinstance(error, EnhancedError):
        return error.category

    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    if is_blocked_by_client(error):
        return ErrorCategory.BLOCKED

    if 'timeout' in error_type or 'timeout' in error_str:
        return ErrorCategory.TIMEOUT

    if any(marker in error_str for marker in NETWORK_MARKERS):
        return ErrorCategory.NETWORK

    if any(marker in error_str for marker in BROWSER_MARKERS):
        return ErrorCategory.BROWSER

    if 'redis' in error_type or 'redis' in error_str or isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.STORAGE

    return ErrorCategory.UNKNOWN
