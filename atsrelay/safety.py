"""
Write-safety gate for Ashby RPC calls.

Responsibilities:
- Classify an RPC method name as mutating or read-only.
- Block mutating calls unless writes are enabled, the method is
  allowlisted, the caller confirmed the write and the payload is a
  non-empty object.

Non-Responsibilities:
- No HTTP.
- No retries. A block is a hard stop for the triggering call.

Invariant:
Read-only methods always pass; a mutating method reaches the network only
after every check succeeds.
"""

import re
from typing import Any, Optional

from .config import Settings
from .errors import WriteBlockedError
from .logger import StructuredLogger, get_logger
from .models import WriteAudit


WRITE_VERB_PATTERN = re.compile(
    r"(add|anonymize|archive|cancel|change|create|delete|remove|restore|set|submit|transfer|update|upload)",
    re.IGNORECASE,
)

REASON_WRITE_DISABLED = "write_disabled"
REASON_NOT_ALLOWLISTED = "method_not_allowlisted"
REASON_MISSING_CONFIRMATION = "missing_confirmation"
REASON_INVALID_CONFIRMATION = "invalid_confirmation"
REASON_INVALID_PAYLOAD = "invalid_payload"
REASON_EMPTY_PAYLOAD = "empty_payload"


def normalize_method_name(method_name: Optional[str]) -> str:
    return str(method_name or "").strip().lstrip("/")


def is_write_method(method_name: Optional[str]) -> bool:
    """Return True if the operation part of ``method_name`` names a mutation.

    ``application.changeStage`` -> checks ``changeStage``; a name without a
    dot is checked whole.
    """
    normalized = normalize_method_name(method_name)
    if not normalized:
        return False
    operation = normalized.split(".", 1)[1] if "." in normalized else normalized
    return bool(WRITE_VERB_PATTERN.search(operation))


class WriteSafetyGate:
    """Guards every mutating Ashby call."""

    def __init__(self, settings: Settings, logger: Optional[StructuredLogger] = None):
        self.settings = settings
        self.logger = logger or get_logger()

    def is_allowlisted(self, method_name: str) -> bool:
        return normalize_method_name(method_name) in self.settings.write_allowed_methods

    def guard(
        self,
        method_name: str,
        payload: Any,
        audit: Optional[WriteAudit] = None,
        write_confirmation: str = "",
        confirmation: str = "",
    ) -> None:
        """
        Raise WriteBlockedError if a mutating call must not proceed.

        Args:
            method_name: Ashby RPC method, e.g. ``application.create``
            payload: Request body the caller intends to send
            audit: Correlation ids for the block log line
            write_confirmation: Confirmation token supplied by the caller
            confirmation: Alias for ``write_confirmation``, used when it is empty
        """
        method = normalize_method_name(method_name)
        if not is_write_method(method):
            return
        audit = audit or WriteAudit()

        if not self.settings.write_enabled:
            self._block(
                "Ashby write blocked. Set ASHBY_WRITE_ENABLED=true only after explicit approval and safety checks.",
                REASON_WRITE_DISABLED,
                method,
                audit,
            )

        if method not in self.settings.write_allowed_methods:
            self._block(
                f"Ashby write blocked for non-allowlisted method: {method}",
                REASON_NOT_ALLOWLISTED,
                method,
                audit,
            )

        if self.settings.write_require_confirmation:
            token = str(write_confirmation or confirmation or "").strip()
            if not token:
                self._block(
                    "Ashby write blocked. Missing write confirmation token.",
                    REASON_MISSING_CONFIRMATION,
                    method,
                    audit,
                )
            if token != self.settings.expected_confirmation:
                self._block(
                    "Ashby write blocked. Invalid write confirmation token.",
                    REASON_INVALID_CONFIRMATION,
                    method,
                    audit,
                )

        if not isinstance(payload, dict):
            self._block("Ashby write blocked. Invalid write payload.", REASON_INVALID_PAYLOAD, method, audit)
        if not payload:
            self._block("Ashby write blocked. Empty write payload.", REASON_EMPTY_PAYLOAD, method, audit)

    def _block(self, message: str, reason: str, method: str, audit: WriteAudit) -> None:
        self.logger.record_write_blocked(reason)
        self.logger.warning(
            "ashby.write.blocked",
            method=method,
            reason=reason,
            detail=message,
            **audit.as_log_context(),
        )
        raise WriteBlockedError(message, reason=reason, method=method)
