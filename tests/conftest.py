"""
Pytest configuration and shared fixtures.
"""

import asyncio
import pytest
from typing import Any, Callable, Dict, List, Optional

from atsrelay.config import Settings
from atsrelay.errors import AshbyApiError, GemApiError
from atsrelay.index import CandidateIndexBuilder, IndexStore
from atsrelay.logger import StructuredLogger, reset_logger
from atsrelay.safety import WriteSafetyGate
from atsrelay.scheduler import IndexRefreshScheduler


CONFIRM = "I_UNDERSTAND_THIS_WRITES_TO_ASHBY"


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAshby:
    """
    In-memory stand-in for AshbyClient.

    Handlers are registered per method; each receives the payload and
    returns the response envelope (or raises). Every call is recorded.
    """

    def __init__(self, gate: Optional[WriteSafetyGate] = None):
        self.gate = gate
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.delay = 0.0

    def on(self, method: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        self.handlers[method] = handler

    def reply(self, method: str, results: Any, **extra) -> None:
        self.handlers[method] = lambda payload: {"success": True, "results": results, **extra}

    def methods(self) -> List[str]:
        return [c["method"] for c in self.calls]

    async def call(self, method_name, payload=None, audit=None, write_confirmation="", confirmation=""):
        payload = payload if payload is not None else {}
        token = write_confirmation or confirmation
        if self.gate is not None:
            self.gate.guard(method_name, payload, audit, write_confirmation=token)
        self.calls.append({"method": method_name, "payload": dict(payload), "confirmation": token})
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        handler = self.handlers.get(method_name)
        if handler is None:
            raise AshbyApiError(f"No fake handler for {method_name}", status=404)
        return handler(payload)


GEM_RECORD = {
    "first_name": "Jane",
    "last_name": "Doe",
    "emails": [{"email_address": "jane@example.com", "is_primary": True}],
    "phone_numbers": [{"number": "+1 555 0100"}],
    "linked_in_handle": "jane-doe",
}


class FakeGem:
    def __init__(self, records):
        self.records = records
        self.requested = []

    async def get_candidate(self, candidate_id, audit=None):
        self.requested.append(candidate_id)
        if candidate_id not in self.records:
            raise GemApiError("Candidate not found", status=404)
        return self.records[candidate_id]


def candidate_row(
    candidate_id: str,
    name: str = "",
    linkedin: Optional[str] = None,
    updated_at: str = "2024-01-01T00:00:00Z",
    email: str = "",
    **extra,
) -> Dict[str, Any]:
    row: Dict[str, Any] = {"id": candidate_id, "name": name, "updatedAt": updated_at, "createdAt": updated_at}
    if linkedin:
        row["socialLinks"] = [{"type": "LinkedIn", "url": linkedin}]
    if email:
        row["primaryEmailAddress"] = {"value": email, "type": "Work", "isPrimary": True}
    row.update(extra)
    return row


def paged_list(pages: List[List[Dict[str, Any]]], sync_token: str = "tok-1"):
    """Build a candidate.list handler serving ``pages`` by cursor."""

    def handler(payload):
        cursor = payload.get("cursor") or ""
        page_no = int(cursor) if cursor else 0
        more = page_no + 1 < len(pages)
        response = {
            "success": True,
            "results": pages[page_no],
            "moreDataAvailable": more,
            "nextCursor": str(page_no + 1) if more else None,
        }
        if not more and sync_token:
            response["syncToken"] = sync_token
        return response

    return handler


@pytest.fixture(autouse=True)
def fresh_global_logger():
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def logger(tmp_path) -> StructuredLogger:
    return StructuredLogger(name="atsrelay-test", level="DEBUG", log_dir=tmp_path / "logs", enable_console=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ashby_api_key="test-key",
        gem_api_key="gem-key",
        write_enabled=True,
        index_ttl_seconds=600,
        index_page_size=2,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate(settings, logger) -> WriteSafetyGate:
    return WriteSafetyGate(settings, logger)


@pytest.fixture
def fake_ashby() -> FakeAshby:
    return FakeAshby()


@pytest.fixture
def store() -> IndexStore:
    return IndexStore()


@pytest.fixture
def builder(fake_ashby, store, settings, logger, clock) -> CandidateIndexBuilder:
    return CandidateIndexBuilder(fake_ashby, store, settings, logger, clock=clock)


@pytest.fixture
def scheduler(builder, store, settings, logger) -> IndexRefreshScheduler:
    return IndexRefreshScheduler(builder, store, settings, logger)
