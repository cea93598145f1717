"""
LinkedIn Lookup Resolver.

Responsibilities:
- Turn a LinkedIn URL and/or handle into normalized index keys.
- Resolve keys to Ashby candidates: index lookup, then name search
  filtered by LinkedIn key, then a forced refresh and one retry.
- Report the primary match, up to nine collisions and index metadata.

Non-Responsibilities:
- No index scanning and no refresh coordination.
- No writes.

Invariant:
Multiple matches are reported as collisions, never silently dropped or
guessed between; ordering is the index ordering (most recently updated
first, then name).
"""

from typing import Any, Dict, List, Optional

from .errors import AshbyApiError, ValidationError
from .index import order_candidates
from .logger import StructuredLogger, get_logger
from .models import CandidateIndex, CandidateSummary, WriteAudit
from .normalize import linkedin_keys_for
from .scheduler import IndexRefreshScheduler


MAX_COLLISIONS = 9

STRATEGY_INDEX = "index"
STRATEGY_NAME_SEARCH = "name_search"
STRATEGY_INDEX_REFRESH = "index_refresh"
STRATEGY_NONE = "none"


def match_in_index(index: CandidateIndex, keys: List[str]) -> List[CandidateSummary]:
    """Union the candidates listed under ``keys``, deduplicated and ordered."""
    seen = set()
    matches: List[CandidateSummary] = []
    for key in keys:
        for candidate_id in index.linkedin_to_candidate_ids.get(key, []):
            if candidate_id in seen:
                continue
            seen.add(candidate_id)
            summary = index.candidates_by_id.get(candidate_id)
            if summary is not None and summary.profile_url:
                matches.append(summary)
    return order_candidates(matches)


class LookupResolver:
    SEARCH_METHOD = "candidate.search"

    def __init__(
        self,
        client,
        scheduler: IndexRefreshScheduler,
        logger: Optional[StructuredLogger] = None,
    ):
        self.client = client
        self.scheduler = scheduler
        self.store = scheduler.store
        self.builder = scheduler.builder
        self.logger = logger or get_logger()

    async def resolve_by_linkedin(
        self,
        linkedin_url: Optional[str] = None,
        linkedin_handle: Optional[str] = None,
        profile_name: Optional[str] = None,
        audit: Optional[WriteAudit] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        Resolve a LinkedIn profile to an Ashby candidate.

        Args:
            linkedin_url: Profile URL in any common form
            linkedin_handle: Profile handle (``jane-doe`` or ``@jane-doe``)
            profile_name: Display name used for the name-search fallback
            audit: Correlation ids for upstream calls
            force_refresh: Refresh the index before looking up

        Returns:
            Dict with ``found``, ``strategy``, ``candidate``, ``collisions``,
            ``index`` metadata and the ``query`` echo

        Raises:
            ValidationError: If neither URL nor handle yields a LinkedIn key
        """
        keys = linkedin_keys_for(linkedin_url, linkedin_handle)
        if not keys:
            raise ValidationError("A LinkedIn profile URL or handle is required.")
        name = str(profile_name or "").strip()
        audit = audit or WriteAudit()
        query = {
            "linkedin_url": linkedin_url or "",
            "linkedin_handle": linkedin_handle or "",
            "profile_name": name,
            "keys": keys,
        }

        current = self.store.index
        if force_refresh or current.has_been_built or not name:
            # a built index is served stale while it refreshes in the background
            index = await self.scheduler.ensure_fresh(
                audit,
                force_refresh=force_refresh,
                prefer_stale=current.has_been_built,
            )
        else:
            self.scheduler.refresh_in_background(audit)
            index = current

        matches = match_in_index(index, keys)
        strategy = STRATEGY_INDEX

        if not matches and name:
            matches = await self._search_by_name(name, keys, audit)
            strategy = STRATEGY_NAME_SEARCH

        if not matches:
            stale_or_partial = not self.scheduler.is_fresh(index) or not index.is_complete
            if force_refresh or (index.candidate_count > 0 and stale_or_partial):
                self.logger.info("candidate_lookup.retry_after_refresh", keys=keys, **audit.as_log_context())
                index = await self.scheduler.ensure_fresh(audit, force_refresh=True, force_full=True)
                matches = match_in_index(index, keys)
                strategy = STRATEGY_INDEX_REFRESH

        if not matches:
            strategy = STRATEGY_NONE

        self.logger.info(
            "candidate_lookup.complete",
            found=bool(matches),
            strategy=strategy,
            matches=len(matches),
            **audit.as_log_context(),
        )
        return {
            "found": bool(matches),
            "strategy": strategy,
            "candidate": matches[0].to_dict() if matches else None,
            "collisions": [m.to_dict() for m in matches[1:1 + MAX_COLLISIONS]],
            "index": self.scheduler.metadata(),
            "query": query,
        }

    async def _search_by_name(self, name: str, keys: List[str], audit: WriteAudit) -> List[CandidateSummary]:
        try:
            response = await self.client.call(self.SEARCH_METHOD, {"name": name}, audit)
        except AshbyApiError as e:
            self.logger.warning("candidate_lookup.name_search.failed", error=str(e), status=e.status)
            return []
        wanted = set(keys)
        found: Dict[str, CandidateSummary] = {}
        for row in response.get("results") or []:
            summary = self.builder.project(row)
            if summary is None or not summary.profile_url:
                continue
            if wanted.intersection(summary.linkedin_keys):
                found[summary.id] = summary
        return order_candidates(found.values())
