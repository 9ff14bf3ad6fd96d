"""Reliability helpers: error taxonomy and anti-detection."""

from .errors import (
    EnhancedError, ErrorContext, ErrorCategory, ErrorSeverity,
    BrowserError, ConfigurationError,
    classify_error, is_blocked_by_client
)
from .stealth import (
    StealthManager, StealthLevel, UserAgentPool,
    BLOCKED_RESOURCE_TYPES, TRACKER_DOMAINS
)

__all__ = [
    # Error Handling
    'EnhancedError', 'ErrorContext', 'ErrorCategory', 'ErrorSeverity',
    'BrowserError', 'ConfigurationError',
    'classify_error', 'is_blocked_by_client',

    # Stealth and Anti-Detection
    'StealthManager', 'StealthLevel', 'UserAgentPool',
    'BLOCKED_RESOURCE_TYPES', 'TRACKER_DOMAINS',
]
