"""Shared utilities for the upstream API clients."""

import asyncio
import json
import time
from typing import Any, Dict, Optional, Tuple, Type

import requests

from ..errors import UpstreamError


def omit_empty(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop keys whose value is None or an empty string."""
    return {k: v for k, v in (payload or {}).items() if v is not None and v != ""}


def parse_body(text: str) -> Any:
    """Decode a JSON body; fall back to the raw text (None when empty)."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def summarize_for_log(value: Any) -> Dict[str, Any]:
    """Describe a result payload without logging it in full."""
    if isinstance(value, list):
        first = value[0] if value else None
        return {
            "type": "array",
            "count": len(value),
            "first_id": first.get("id", "") if isinstance(first, dict) else "",
        }
    if isinstance(value, dict):
        return {"type": "object", "keys": list(value.keys())[:20], "id": value.get("id", "")}
    return {"type": type(value).__name__}


async def send_request(
    session: requests.Session,
    method: str,
    url: str,
    error_cls: Type[UpstreamError],
    platform: str,
    timeout: Optional[float] = None,
    **kwargs,
) -> Tuple[requests.Response, Any, int]:
    """Send one HTTP request off the event loop.

    Args:
        session: requests session carrying auth headers
        method: HTTP verb
        url: Absolute URL
        error_cls: Error type raised on transport failure
        platform: Upstream name used in error messages (e.g. 'Ashby')
        timeout: Seconds before giving up, or None to wait indefinitely

    Returns:
        Tuple of (response, parsed body, duration in ms)

    Raises:
        error_cls: On timeout, connection failure or other transport error
    """
    start = time.monotonic()
    try:
        resp = await asyncio.to_thread(session.request, method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout:
        raise error_cls(f"{platform} request timed out. Try again later.")
    except requests.exceptions.RequestException as e:
        raise error_cls(f"{platform} request error: {e}")
    duration_ms = int((time.monotonic() - start) * 1000)
    return resp, parse_body(resp.text), duration_ms
