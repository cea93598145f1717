from typing import Any, Dict, List
from urllib.parse import urlparse

UPLOAD_REQUIRED_FIELDS = ["gem_candidate_id", "job_id"]
UPLOAD_OPTIONAL_STR_FIELDS = [
    "write_confirmation",
    "confirmation",
    "run_id",
    "action_id",
]
LOOKUP_STR_FIELDS = ["linkedin_url", "linkedin_handle", "profile_name"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme and p.netloc)
    except ValueError:
        return False


def validate_upload_request(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in UPLOAD_REQUIRED_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    for f in UPLOAD_OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    return errors


def validate_lookup_request(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    for f in LOOKUP_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if not (_is_non_empty_str(data.get("linkedin_url")) or _is_non_empty_str(data.get("linkedin_handle"))):
        errors.append("Provide linkedin_url or linkedin_handle")

    url = data.get("linkedin_url")
    if _is_non_empty_str(url) and "://" in url and not _valid_url(url):
        errors.append("Field 'linkedin_url' must be a valid absolute URL (scheme + host)")

    return errors
