"""
Source-candidate profile extraction and existing-candidate matching.

Gem records carry email addresses in several shapes; each observed shape
has its own variant type and ``extract_email`` walks them in priority
order.
"""

from typing import Any, Dict, List, Optional

from .models import DirectEmail, EmailShape, FlaggedEmailList, PlainEmailList, SourceProfile
from .normalize import normalize_linkedin_key, normalize_text, sanitize_linkedin_handle


EMAIL_LIST_FIELDS = ("emails", "email_addresses", "emailAddresses")
ADDRESS_KEYS = ("email_address", "emailAddress", "address", "value", "email")


def _address(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    if isinstance(entry, dict):
        for key in ADDRESS_KEYS:
            value = entry.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


def _is_primary(entry: Any) -> bool:
    return isinstance(entry, dict) and bool(entry.get("is_primary") or entry.get("isPrimary"))


def email_shapes(record: Dict[str, Any]) -> List[EmailShape]:
    """Classify the email-bearing fields of ``record``, highest priority first."""
    shapes: List[EmailShape] = []
    direct = record.get("email")
    if isinstance(direct, str):
        shapes.append(DirectEmail(direct))
    for name in EMAIL_LIST_FIELDS:
        values = record.get(name)
        if isinstance(values, list) and any(_is_primary(v) for v in values):
            shapes.append(FlaggedEmailList(values))
    for name in EMAIL_LIST_FIELDS:
        values = record.get(name)
        if isinstance(values, list):
            shapes.append(PlainEmailList(name, values))
    return shapes


def extract_email(shapes: List[EmailShape]) -> str:
    """Direct field, then a primary-flagged entry, then the first non-empty entry."""
    for shape in shapes:
        if isinstance(shape, DirectEmail) and shape.value.strip():
            return shape.value.strip()
    for shape in shapes:
        if isinstance(shape, FlaggedEmailList):
            for entry in shape.entries:
                if _is_primary(entry) and _address(entry):
                    return _address(entry)
    for shape in shapes:
        if isinstance(shape, PlainEmailList):
            for entry in shape.values:
                if _address(entry):
                    return _address(entry)
    return ""


def _gem_phone(record: Dict[str, Any]) -> str:
    for entry in record.get("phone_numbers") or record.get("phoneNumbers") or []:
        if isinstance(entry, dict) and entry.get("number"):
            return str(entry["number"]).strip()
        if isinstance(entry, str) and entry.strip():
            return entry.strip()
    return str(record.get("phone") or record.get("phone_number") or "").strip()


def _gem_linkedin_url(record: Dict[str, Any]) -> str:
    handle = sanitize_linkedin_handle(record.get("linked_in_handle"))
    if handle:
        return f"https://www.linkedin.com/in/{handle}"
    for profile in record.get("profiles") or []:
        if not isinstance(profile, dict):
            continue
        url = str(profile.get("url") or "").strip()
        if normalize_linkedin_key(url) or str(profile.get("network") or "").lower() == "linkedin":
            if url:
                return url
    return str(record.get("linkedin_url") or record.get("linkedInUrl") or "").strip()


def source_profile_from_gem(candidate_id: str, record: Dict[str, Any]) -> SourceProfile:
    first = str(record.get("first_name") or "").strip()
    last = str(record.get("last_name") or "").strip()
    name = " ".join(p for p in (first, last) if p) or str(record.get("name") or "").strip()
    return SourceProfile(
        gem_candidate_id=candidate_id,
        name=name,
        first_name=first,
        last_name=last,
        email=extract_email(email_shapes(record)),
        phone=_gem_phone(record),
        linkedin_url=_gem_linkedin_url(record),
    )


def ashby_row_emails(row: Dict[str, Any]) -> List[str]:
    emails: List[str] = []
    primary = row.get("primaryEmailAddress")
    for entry in [primary] + list(row.get("emailAddresses") or []):
        address = _address(entry).lower()
        if address and address not in emails:
            emails.append(address)
    return emails


def _row_linkedin_keys(row: Dict[str, Any]) -> List[str]:
    urls = [row.get("linkedInUrl")]
    urls += [link.get("url") for link in row.get("socialLinks") or [] if isinstance(link, dict)]
    return [k for k in (normalize_linkedin_key(u or "") for u in urls) if k]


def select_existing_candidate(profile: SourceProfile, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Choose the Ashby candidate that already represents ``profile``.

    Priority: exact LinkedIn URL, then exact email (case-insensitive),
    then exact full name (case-insensitive), then the first search result.

    Args:
        profile: Source candidate fields
        rows: Union of email-search and name-search results, in order

    Returns:
        The matching Ashby candidate row, or None when ``rows`` is empty
    """
    rows = [r for r in rows if isinstance(r, dict) and r.get("id")]
    if not rows:
        return None

    linkedin_key = normalize_linkedin_key(profile.linkedin_url)
    if linkedin_key:
        for row in rows:
            if linkedin_key in _row_linkedin_keys(row):
                return row

    email = profile.email.strip().lower()
    if email:
        for row in rows:
            if email in ashby_row_emails(row):
                return row

    name = normalize_text(profile.name)
    if name:
        for row in rows:
            if normalize_text(row.get("name") or "") == name:
                return row

    return rows[0]
