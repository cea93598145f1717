from typing import Any, Dict, List, Optional, Tuple

from .models import WriteAudit
from .normalize import normalize_text


def _words(text: str) -> List[str]:
    return [w for w in normalize_text(text).replace(":", " ").split() if w]


def match_source(
    sources: List[Dict[str, Any]], names: List[str]
) -> Tuple[Optional[Dict[str, Any]], str]:
    """Fuzzy-match configured source names against the source catalog.

    Every configured name is tried as an exact title first, in order; then
    as "title contains all of its words", in order. With the default names
    ("sourced: gem", "gem") this is: exact "sourced: gem", exact "gem",
    contains "sourced" and "gem", contains "gem".
    """
    active = [s for s in sources if isinstance(s, dict) and s.get("id") and not s.get("isArchived")]
    titled = [(s, normalize_text(s.get("title") or "")) for s in active]

    for name in names:
        wanted = normalize_text(name)
        for source, title in titled:
            if wanted and title == wanted:
                return source, f"exact:{wanted}"

    for name in names:
        words = _words(name)
        for source, title in titled:
            if words and all(w in title for w in words):
                return source, f"contains:{'+'.join(words)}"

    return None, "none"


async def list_sources(client, audit: Optional[WriteAudit] = None) -> List[Dict[str, Any]]:
    response = await client.call("source.list", {}, audit)
    return [s for s in response.get("results") or [] if isinstance(s, dict)]
