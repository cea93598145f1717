import re
from datetime import datetime, timezone
from typing import Any, List, Optional


LINKEDIN_MARKER = "linkedin.com/"

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")


def normalize_text(s: str) -> str:
    return " ".join(str(s or "").strip().lower().split())


def normalize_linkedin_key(url: str) -> str:
    """Reduce a LinkedIn URL to the key used by the candidate index.

    Lower-cased, without scheme, ``www.``, query string, fragment or
    trailing slash. Returns "" for anything that is not a LinkedIn link.
    """
    value = str(url or "").strip().lower()
    value = _SCHEME_RE.sub("", value)
    if value.startswith("www."):
        value = value[4:]
    value = re.split(r"[?#]", value, maxsplit=1)[0]
    value = value.rstrip("/")
    if LINKEDIN_MARKER not in value:
        return ""
    return value


def sanitize_linkedin_handle(raw: Optional[str]) -> str:
    """Return the bare profile handle from a handle, ``@handle`` or profile URL."""
    value = str(raw or "").strip().lstrip("@")
    if not value:
        return ""
    if LINKEDIN_MARKER in value.lower():
        key = normalize_linkedin_key(value)
        match = re.search(r"linkedin\.com/in/([^/]+)", key)
        return match.group(1) if match else ""
    return value.strip("/")


def linkedin_keys_for(url: Optional[str] = None, handle: Optional[str] = None) -> List[str]:
    """Build the ordered, de-duplicated lookup keys for a URL and/or handle."""
    keys: List[str] = []
    url_key = normalize_linkedin_key(url or "")
    if url_key:
        keys.append(url_key)
    clean_handle = sanitize_linkedin_handle(handle)
    if clean_handle:
        handle_key = normalize_linkedin_key(f"https://www.linkedin.com/in/{clean_handle}")
        if handle_key and handle_key not in keys:
            keys.append(handle_key)
    return keys


def to_epoch_ms(value: Any) -> int:
    if value is None or value == "" or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value if value > 1e12 else value * 1000)
    text = str(value).strip()
    try:
        numeric = float(text)
        return int(numeric if numeric > 1e12 else numeric * 1000)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def iso_from_ms(ms: int) -> str:
    if not ms:
        return ""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
