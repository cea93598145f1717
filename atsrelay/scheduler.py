"""
Index Refresh Scheduler.

Responsibilities:
- Decide whether the candidate index is fresh enough to serve.
- Run at most one refresh at a time; concurrent callers share it.
- Serve stale snapshots while refreshing in the background on request.
- Retry an incremental refresh once as a full resync when the upstream
  rejects the sync token.

Non-Responsibilities:
- No scanning or projection (see index).
- No lookups.

Invariant:
``store.inflight`` is set for exactly as long as one refresh runs and is
cleared whether that refresh succeeds or fails. Background refresh
failures are logged and never raised into the triggering caller.
"""

import asyncio
from typing import Optional

from .config import Settings
from .errors import is_sync_token_error
from .index import CandidateIndexBuilder, IndexStore
from .logger import StructuredLogger, get_logger
from .models import CandidateIndex, WriteAudit


class IndexRefreshScheduler:
    def __init__(
        self,
        builder: CandidateIndexBuilder,
        store: IndexStore,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
    ):
        self.builder = builder
        self.store = store
        self.settings = settings
        self.logger = logger or get_logger()

    @property
    def ttl_ms(self) -> int:
        return self.settings.index_ttl_seconds * 1000

    def is_fresh(self, index: Optional[CandidateIndex] = None) -> bool:
        index = index or self.store.index
        return index.is_fresh(self.builder.now_ms(), self.ttl_ms)

    def metadata(self, index: Optional[CandidateIndex] = None) -> dict:
        index = index or self.store.index
        return index.metadata(self.builder.now_ms(), self.ttl_ms, self.store.refresh_in_flight)

    def request_full_resync(self) -> None:
        """Make the next refresh a full resync regardless of sync token."""
        self.store.full_resync_requested = True

    async def ensure_fresh(
        self,
        audit: Optional[WriteAudit] = None,
        force_refresh: bool = False,
        prefer_stale: bool = False,
        force_full: bool = False,
    ) -> CandidateIndex:
        """
        Return an index snapshot that satisfies the freshness policy.

        Args:
            audit: Correlation ids for upstream calls
            force_refresh: Always refresh and wait for it
            prefer_stale: Serve a stale non-empty snapshot immediately and
                refresh in the background
            force_full: Make the refresh a full resync

        Returns:
            The current CandidateIndex after any awaited refresh
        """
        index = self.store.index
        if force_refresh:
            return await self.refresh(audit, force_full=force_full)
        if self.is_fresh(index):
            return index
        if prefer_stale and index.candidate_count > 0:
            self.refresh_in_background(audit)
            return index
        return await self.refresh(audit, force_full=force_full)

    async def refresh(self, audit: Optional[WriteAudit] = None, force_full: bool = False) -> CandidateIndex:
        """
        Run a refresh, or join the one already in flight.

        A full resync never settles for an in-flight incremental pass: it
        waits for that pass to finish and then starts its own.
        """
        if force_full:
            self.request_full_resync()
        task = self._start(audit, force_full)
        if force_full and not self.store.inflight_full:
            await asyncio.wait([task])
            task = self._start(audit, force_full)
        return await asyncio.shield(task)

    def refresh_in_background(self, audit: Optional[WriteAudit] = None, force_full: bool = False) -> asyncio.Task:
        """Start (or join) a refresh without waiting for it."""
        task = self._start(audit, force_full)
        task.add_done_callback(self._log_background_outcome)
        return task

    async def wait_idle(self) -> None:
        """Wait for the in-flight refresh, if any, ignoring its outcome."""
        task = self.store.inflight
        if task is None:
            return
        await asyncio.wait([task])

    def _start(self, audit: Optional[WriteAudit], force_full: bool) -> asyncio.Task:
        if self.store.inflight is not None:
            self.logger.debug("candidate_index.refresh.joined")
            return self.store.inflight
        full = force_full or self.store.full_resync_requested
        task = asyncio.ensure_future(self._run(audit, full))
        self.store.inflight = task
        self.store.inflight_full = full
        return task

    async def _run(self, audit: Optional[WriteAudit], force_full: bool) -> CandidateIndex:
        try:
            incremental = self.store.index.can_sync_incrementally and not force_full
            try:
                index = await self.builder.build_or_extend(audit, force_full=force_full)
            except Exception as e:
                if not incremental or not is_sync_token_error(e):
                    raise
                self.logger.record_sync_token_fallback()
                self.logger.warning("candidate_index.sync_token_rejected", error=str(e))
                index = await self.builder.build_or_extend(audit, force_full=True)
                force_full = True
            if force_full:
                self.store.full_resync_requested = False
            return index
        except Exception as e:
            self.logger.record_index_refresh_failure()
            self.logger.error(
                "candidate_index.refresh.failed",
                error=str(e),
                status=getattr(e, "status", None),
            )
            raise
        finally:
            self.store.inflight = None

    def _log_background_outcome(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning("candidate_index.background_refresh.failed", error=str(error))
