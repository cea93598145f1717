"""
Candidate Identity Index.

Responsibilities:
- Scan Ashby ``candidate.list`` (full or incremental via sync token).
- Project rows to CandidateSummary and upsert them by id.
- Rebuild the LinkedIn-key reverse index and install the new snapshot.

Non-Responsibilities:
- No freshness policy and no refresh coordination (see scheduler).
- No lookup strategy (see resolver).

Invariant:
The reverse index is always rebuilt in full from ``candidates_by_id``;
every id it lists exists in ``candidates_by_id``. Snapshots are replaced
whole, never patched in place.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import Settings
from .logger import StructuredLogger, get_logger
from .models import CandidateIndex, CandidateSummary, WriteAudit
from .normalize import iso_from_ms


def candidate_sort_key(summary: CandidateSummary) -> Tuple[int, str, str]:
    """Most recently updated first, then name, then id."""
    return (-summary.updated_at_ms, summary.name.lower(), summary.id)


def order_candidates(summaries: Iterable[CandidateSummary]) -> List[CandidateSummary]:
    return sorted(summaries, key=candidate_sort_key)


def build_linkedin_index(candidates_by_id: Dict[str, CandidateSummary]) -> Dict[str, List[str]]:
    """Map each normalized LinkedIn key to its ordered candidate ids."""
    grouped: Dict[str, List[CandidateSummary]] = {}
    for summary in candidates_by_id.values():
        for key in summary.linkedin_keys:
            grouped.setdefault(key, []).append(summary)
    return {
        key: [s.id for s in order_candidates(members)]
        for key, members in sorted(grouped.items())
    }


@dataclass
class IndexStore:
    """Process-wide owner of the current snapshot and the in-flight refresh."""

    index: CandidateIndex = field(default_factory=CandidateIndex)
    inflight: Optional[asyncio.Task] = None
    inflight_full: bool = False
    full_resync_requested: bool = False

    @property
    def refresh_in_flight(self) -> bool:
        return self.inflight is not None and not self.inflight.done()

    def install(self, index: CandidateIndex) -> None:
        self.index = index


class CandidateIndexBuilder:
    LIST_METHOD = "candidate.list"

    def __init__(
        self,
        client,
        store: IndexStore,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.store = store
        self.settings = settings
        self.logger = logger or get_logger()
        self.clock = clock

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def project(self, row) -> Optional[CandidateSummary]:
        return CandidateSummary.from_api(row, self.settings.ashby_app_base_url)

    async def build_or_extend(self, audit: Optional[WriteAudit] = None, force_full: bool = False) -> CandidateIndex:
        """
        Scan the candidate feed and install a new index snapshot.

        Args:
            audit: Correlation ids for upstream calls
            force_full: Discard the current snapshot and rescan from scratch

        Returns:
            The newly installed CandidateIndex
        """
        previous = self.store.index
        incremental = previous.can_sync_incrementally and not force_full
        mode = "incremental" if incremental else "full"
        working: Dict[str, CandidateSummary] = dict(previous.candidates_by_id) if incremental else {}
        sync_token = previous.sync_token if incremental else ""
        scan_max = self.settings.index_scan_max
        page_size = self.settings.index_page_size

        self.logger.info(
            "candidate_index.refresh.start",
            mode=mode,
            existing_candidates=previous.candidate_count,
            **(audit.as_log_context() if audit else {}),
        )

        cursor = ""
        scanned = 0
        exhausted = False
        while True:
            payload = {"limit": min(page_size, scan_max - scanned), "cursor": cursor}
            if incremental and not cursor:
                payload["syncToken"] = previous.sync_token
            response = await self.client.call(self.LIST_METHOD, payload, audit)

            for row in response.get("results") or []:
                scanned += 1
                summary = self.project(row)
                if summary is not None:
                    working[summary.id] = summary

            page_token = str(response.get("syncToken") or "")
            if page_token:
                sync_token = page_token

            next_cursor = str(response.get("nextCursor") or "")
            if not response.get("moreDataAvailable"):
                exhausted = True
                break
            if scanned >= scan_max:
                self.logger.warning("candidate_index.scan_cap_reached", scanned=scanned, scan_max=scan_max)
                break
            if not next_cursor:
                self.logger.warning("candidate_index.missing_cursor", scanned=scanned)
                break
            cursor = next_cursor

        built_at_ms = self.now_ms()
        index = CandidateIndex(
            built_at_ms=built_at_ms,
            built_at=iso_from_ms(built_at_ms),
            scanned_count=scanned,
            is_complete=exhausted and (not incremental or previous.is_complete),
            sync_token=sync_token,
            candidates_by_id=working,
            linkedin_to_candidate_ids=build_linkedin_index(working),
        )
        self.store.install(index)
        self.logger.record_index_refresh(mode)
        self.logger.info(
            "candidate_index.refresh.complete",
            mode=mode,
            scanned=scanned,
            candidates=index.candidate_count,
            linkedin_keys=len(index.linkedin_to_candidate_ids),
            is_complete=index.is_complete,
        )
        return index
