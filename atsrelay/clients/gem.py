"""Gem REST client (read side only: the source candidate of an upload)."""

from typing import Any, Dict, Optional

import requests

from ..config import Settings
from ..errors import ConfigurationError, GemApiError, ValidationError
from ..logger import StructuredLogger, get_logger
from ..models import WriteAudit
from .common import omit_empty, send_request, summarize_for_log


class GemClient:
    def __init__(
        self,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.logger = logger or get_logger()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def build_url(self, pathname: str) -> str:
        path = pathname if pathname.startswith("/") else f"/{pathname}"
        return f"{self.settings.gem_api_base_url}{path}"

    async def request(
        self,
        pathname: str,
        query: Optional[Dict[str, Any]] = None,
        audit: Optional[WriteAudit] = None,
    ) -> Any:
        """GET a Gem resource and return the decoded body."""
        if not self.settings.gem_api_key:
            raise ConfigurationError("Server is missing GEM_API_KEY.")
        audit = audit or WriteAudit()
        url = self.build_url(pathname)
        headers = {
            "X-API-Key": self.settings.gem_api_key,
            "Authorization": f"Bearer {self.settings.gem_api_key}",
        }
        self.logger.record_api_call()
        self.logger.debug("gem.request.start", path=pathname, query=query, **audit.as_log_context())
        try:
            resp, data, duration_ms = await send_request(
                self.session,
                "GET",
                url,
                GemApiError,
                "Gem",
                timeout=self.settings.request_timeout_seconds or None,
                params=omit_empty(query),
                headers=headers,
            )
        except GemApiError as e:
            self.logger.record_api_error()
            self.logger.error("gem.request.error", path=pathname, error=str(e), **audit.as_log_context())
            raise

        if not resp.ok:
            if isinstance(data, dict) and data.get("message"):
                message = str(data["message"])
            else:
                message = resp.text or f"Gem API request failed with {resp.status_code}"
            self.logger.record_api_error()
            self.logger.error(
                "gem.request.error",
                path=pathname,
                status=resp.status_code,
                duration_ms=duration_ms,
                detail=message,
                response=data,
                **audit.as_log_context(),
            )
            raise GemApiError(message, status=resp.status_code, data=data)

        self.logger.info(
            "gem.request.success",
            path=pathname,
            status=resp.status_code,
            duration_ms=duration_ms,
            summary=summarize_for_log(data),
            **audit.as_log_context(),
        )
        return data

    async def get_candidate(self, candidate_id: str, audit: Optional[WriteAudit] = None) -> Dict[str, Any]:
        candidate_id = str(candidate_id or "").strip()
        if not candidate_id:
            raise ValidationError("candidateId is required.")
        data = await self.request(f"/v0/candidates/{candidate_id}", audit=audit)
        return data if isinstance(data, dict) else {}
