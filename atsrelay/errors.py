"""
Error types raised by the relay.

Validation errors and write-safety blocks are never retried. Upstream
errors keep the HTTP status and the parsed body so callers can report
them verbatim.
"""

import json
import re
from typing import Any, Optional


SYNC_TOKEN_PATTERN = re.compile(r"sync[\s_-]?token", re.IGNORECASE)


class RelayError(Exception):
    """Base class for relay errors."""
    pass


class ValidationError(RelayError, ValueError):
    """Raised when a required identity or job reference is missing."""
    pass


class ConfigurationError(RelayError):
    """Raised when a call needs configuration the process does not have."""
    pass


class WriteBlockedError(RelayError):
    """Raised when the write-safety gate refuses a mutating call."""

    def __init__(self, message: str, reason: str, method: str = ""):
        super().__init__(message)
        self.reason = reason
        self.method = method


class UpstreamError(RelayError):
    """An upstream API call failed. ``status`` defaults to 400."""

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.status = status or 400
        self.data = data


class AshbyApiError(UpstreamError):
    pass


class GemApiError(UpstreamError):
    pass


def is_sync_token_error(exc: BaseException) -> bool:
    """
    Check whether an upstream failure was caused by an expired or invalid
    sync token.

    Args:
        exc: Exception raised by an incremental index refresh

    Returns:
        True if the message or the response body mentions a sync token
    """
    if SYNC_TOKEN_PATTERN.search(str(exc)):
        return True
    data = getattr(exc, "data", None)
    if data is None:
        return False
    if isinstance(data, str):
        text = data
    else:
        try:
            text = json.dumps(data, default=str)
        except (TypeError, ValueError):
            text = str(data)
    return bool(SYNC_TOKEN_PATTERN.search(text))
