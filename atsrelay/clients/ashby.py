"""Ashby RPC client.

Every Ashby endpoint is ``POST {base}/{method}`` with a JSON body and
Basic auth (API key as username, empty password). A call succeeds only
when the HTTP request succeeds and the body is an object with
``"success": true``.
"""

from typing import Any, Dict, Optional

import requests
from requests.auth import HTTPBasicAuth

from ..config import Settings
from ..errors import AshbyApiError, ConfigurationError
from ..logger import StructuredLogger, get_logger
from ..models import WriteAudit
from ..safety import WriteSafetyGate, normalize_method_name
from .common import omit_empty, send_request, summarize_for_log


def error_message(parsed: Any, text: str, status: int) -> str:
    """Pick the most specific error message an Ashby error body offers."""
    if isinstance(parsed, dict):
        info = parsed.get("errorInfo")
        if isinstance(info, dict) and info.get("message"):
            return str(info["message"])
        errors = parsed.get("errors")
        if isinstance(errors, list) and errors:
            joined = ", ".join(str(e) for e in errors)
            if joined:
                return joined
        if parsed.get("message"):
            return str(parsed["message"])
    if text:
        return text
    return f"Ashby API request failed with {status}"


class AshbyClient:
    def __init__(
        self,
        settings: Settings,
        gate: WriteSafetyGate,
        logger: Optional[StructuredLogger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.gate = gate
        self.logger = logger or get_logger()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def build_url(self, method_name: str) -> str:
        normalized = normalize_method_name(method_name)
        if not normalized:
            raise ValueError("Ashby method name is required.")
        return f"{self.settings.ashby_api_base_url}/{normalized}"

    async def call(
        self,
        method_name: str,
        payload: Optional[Dict[str, Any]] = None,
        audit: Optional[WriteAudit] = None,
        write_confirmation: str = "",
        confirmation: str = "",
    ) -> Dict[str, Any]:
        """
        Issue one Ashby RPC call.

        Args:
            method_name: RPC method, leading slashes ignored
            payload: Request body; None and "" values are omitted
            audit: Correlation ids attached to every log line
            write_confirmation: Token checked by the write-safety gate
            confirmation: Alias for ``write_confirmation``

        Returns:
            The decoded response envelope

        Raises:
            ValueError: If the method name is empty
            ConfigurationError: If no API key is configured
            WriteBlockedError: If the write-safety gate refuses the call
            AshbyApiError: On transport failure or an unsuccessful envelope
        """
        method = normalize_method_name(method_name)
        if not method:
            raise ValueError("Ashby method name is required.")
        if not self.settings.ashby_api_key:
            raise ConfigurationError("Server is missing ASHBY_API_KEY.")
        audit = audit or WriteAudit()
        payload = payload if payload is not None else {}

        self.gate.guard(method, payload, audit, write_confirmation=write_confirmation, confirmation=confirmation)
        url = self.build_url(method)
        body = omit_empty(payload) if isinstance(payload, dict) else payload

        self.logger.record_api_call()
        self.logger.debug("ashby.request.start", method=method, payload=body, **audit.as_log_context())

        try:
            resp, parsed, duration_ms = await send_request(
                self.session,
                "POST",
                url,
                AshbyApiError,
                "Ashby",
                timeout=self.settings.request_timeout_seconds or None,
                json=body,
                auth=HTTPBasicAuth(self.settings.ashby_api_key, ""),
            )
        except AshbyApiError as e:
            self.logger.record_api_error()
            self.logger.error("ashby.request.error", method=method, error=str(e), **audit.as_log_context())
            raise

        success = resp.ok and isinstance(parsed, dict) and parsed.get("success") is True
        if not success:
            message = error_message(parsed, resp.text, resp.status_code)
            self.logger.record_api_error()
            self.logger.error(
                "ashby.request.error",
                method=method,
                status=resp.status_code,
                duration_ms=duration_ms,
                detail=message,
                response=parsed,
                **audit.as_log_context(),
            )
            raise AshbyApiError(message, status=resp.status_code, data=parsed)

        self.logger.info(
            "ashby.request.success",
            method=method,
            status=resp.status_code,
            duration_ms=duration_ms,
            summary=summarize_for_log(parsed.get("results")),
            **audit.as_log_context(),
        )
        return parsed
