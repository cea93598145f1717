"""
Tests for LinkedIn lookup resolution: index, name search and forced refresh.
"""

import asyncio
import pytest

from atsrelay.errors import AshbyApiError, ValidationError
from atsrelay.resolver import MAX_COLLISIONS, LookupResolver, match_in_index

from conftest import candidate_row, paged_list


JANE = "https://www.linkedin.com/in/jane-doe/"
JANE_KEY = "linkedin.com/in/jane-doe"


@pytest.fixture
def resolver(fake_ashby, scheduler, logger):
    return LookupResolver(fake_ashby, scheduler, logger)


def chunk(rows, size=2):
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def resolve(resolver, scheduler, **kwargs):
    async def scenario():
        result = await resolver.resolve_by_linkedin(**kwargs)
        await scheduler.wait_idle()
        return result

    return asyncio.run(scenario())


class TestIndexStrategy:
    def test_url_variants_resolve_to_indexed_candidate(self, fake_ashby, resolver, scheduler):
        fake_ashby.on("candidate.list", paged_list([[
            candidate_row("c-jane", "Jane Doe", linkedin=JANE),
            candidate_row("c-john", "John Roe", linkedin="https://linkedin.com/in/john-roe"),
        ]]))

        result = resolve(resolver, scheduler, linkedin_url="https://linkedin.com/in/Jane-Doe?x=1#y")

        assert result["found"] is True
        assert result["strategy"] == "index"
        assert result["candidate"]["id"] == "c-jane"
        assert JANE_KEY in result["candidate"]["linkedin_keys"]
        assert result["candidate"]["profile_url"].endswith("/candidates/c-jane")
        assert result["collisions"] == []
        assert result["query"]["keys"] == [JANE_KEY]
        assert result["index"]["candidate_count"] == 2

    def test_handle_lookup(self, fake_ashby, resolver, scheduler):
        fake_ashby.on("candidate.list", paged_list([[candidate_row("c-jane", "Jane Doe", linkedin=JANE)]]))

        result = resolve(resolver, scheduler, linkedin_handle="@Jane-Doe")

        assert result["candidate"]["id"] == "c-jane"

    def test_collisions_are_capped_and_ordered(self, fake_ashby, resolver, scheduler):
        rows = [
            candidate_row(f"c{i:02d}", f"Jane {i:02d}", linkedin=JANE, updated_at=f"2024-01-{i + 1:02d}T00:00:00Z")
            for i in range(12)
        ]
        fake_ashby.on("candidate.list", paged_list(chunk(rows)))

        result = resolve(resolver, scheduler, linkedin_url=JANE)

        assert result["candidate"]["id"] == "c11"
        assert len(result["collisions"]) == MAX_COLLISIONS
        assert [c["id"] for c in result["collisions"]] == [f"c{i:02d}" for i in range(10, 1, -1)]

    def test_no_match_reports_none(self, fake_ashby, resolver, scheduler):
        fake_ashby.on("candidate.list", paged_list([[candidate_row("c1", "Other", linkedin="linkedin.com/in/other")]]))

        result = resolve(resolver, scheduler, linkedin_url=JANE)

        assert result["found"] is False
        assert result["strategy"] == "none"
        assert result["candidate"] is None
        assert result["collisions"] == []
        assert "candidate.search" not in fake_ashby.methods()

    def test_stale_index_is_served_while_refreshing(self, fake_ashby, resolver, scheduler, store, clock):
        fake_ashby.on("candidate.list", paged_list([[candidate_row("c-jane", "Jane Doe", linkedin=JANE)]]))
        asyncio.run(scheduler.ensure_fresh())
        clock.advance(601)
        fake_ashby.delay = 0.05

        async def scenario():
            result = await resolver.resolve_by_linkedin(linkedin_url=JANE, profile_name="Jane Doe")
            in_flight = store.refresh_in_flight
            await scheduler.wait_idle()
            return result, in_flight

        result, in_flight = asyncio.run(scenario())

        assert result["strategy"] == "index"
        assert result["candidate"]["id"] == "c-jane"
        assert result["index"]["is_fresh"] is False
        assert result["index"]["refresh_in_flight"] is True
        assert in_flight
        assert store.inflight is None
        assert scheduler.is_fresh()


class TestNameSearchStrategy:
    def test_name_search_filters_by_linkedin_key(self, fake_ashby, resolver, scheduler):
        fake_ashby.on("candidate.list", paged_list([[candidate_row("c-other", "Other")]]))
        fake_ashby.reply("candidate.search", [
            candidate_row("c-namesake", "Jane Doe", linkedin="https://linkedin.com/in/jane-doe-42"),
            candidate_row("c-jane", "Jane Doe", linkedin=JANE),
        ])

        result = resolve(resolver, scheduler, linkedin_url=JANE, profile_name="  Jane Doe ")

        assert result["strategy"] == "name_search"
        assert result["candidate"]["id"] == "c-jane"
        assert result["collisions"] == []
        search = [c for c in fake_ashby.calls if c["method"] == "candidate.search"][0]
        assert search["payload"] == {"name": "Jane Doe"}

    def test_cold_index_with_name_refreshes_in_background(self, fake_ashby, resolver, scheduler, store):
        fake_ashby.on("candidate.list", paged_list([[candidate_row("c-jane", "Jane Doe", linkedin=JANE)]]))
        fake_ashby.reply("candidate.search", [candidate_row("c-jane", "Jane Doe", linkedin=JANE)])

        result = resolve(resolver, scheduler, linkedin_url=JANE, profile_name="Jane Doe")

        assert result["strategy"] == "name_search"
        assert store.index.candidate_count == 1

    def test_name_search_failure_degrades_to_none(self, fake_ashby, resolver, scheduler):
        fake_ashby.on("candidate.list", paged_list([[]]))

        def boom(payload):
            raise AshbyApiError("search unavailable", status=503)

        fake_ashby.on("candidate.search", boom)

        result = resolve(resolver, scheduler, linkedin_url=JANE, profile_name="Jane Doe")

        assert result["found"] is False
        assert result["strategy"] == "none"


class TestIndexRefreshStrategy:
    def test_forced_refresh_retries_with_full_resync(self, fake_ashby, resolver, scheduler):
        rows = [candidate_row("c1", "Other", linkedin="linkedin.com/in/other")]

        def handler(payload):
            results = [] if payload.get("syncToken") else list(rows)
            return {"success": True, "results": results, "moreDataAvailable": False, "syncToken": "tok-1"}

        fake_ashby.on("candidate.list", handler)
        asyncio.run(scheduler.ensure_fresh())
        rows.append(candidate_row("c-jane", "Jane Doe", linkedin=JANE))

        result = resolve(resolver, scheduler, linkedin_url=JANE, force_refresh=True)

        assert result["strategy"] == "index_refresh"
        assert result["candidate"]["id"] == "c-jane"
        list_calls = [c for c in fake_ashby.calls if c["method"] == "candidate.list"]
        assert len(list_calls) == 3
        assert "syncToken" in list_calls[1]["payload"]
        assert "syncToken" not in list_calls[2]["payload"]

    def test_partial_index_triggers_retry(self, fake_ashby, resolver, scheduler, settings):
        settings.index_scan_max = 2
        rows = [candidate_row("c1"), candidate_row("c2"), candidate_row("c-jane", linkedin=JANE)]
        fake_ashby.on("candidate.list", paged_list(chunk(rows)))
        asyncio.run(scheduler.ensure_fresh())
        assert not scheduler.store.index.is_complete

        settings.index_scan_max = 20000
        result = resolve(resolver, scheduler, linkedin_url=JANE)

        assert result["strategy"] == "index_refresh"
        assert result["candidate"]["id"] == "c-jane"

    def test_retry_does_not_settle_for_inflight_incremental(self, fake_ashby, resolver, scheduler, clock):
        rows = [candidate_row("c1", "Other", linkedin="linkedin.com/in/other")]

        def handler(payload):
            results = [] if payload.get("syncToken") else list(rows)
            return {"success": True, "results": results, "moreDataAvailable": False, "syncToken": "tok-1"}

        fake_ashby.on("candidate.list", handler)
        asyncio.run(scheduler.ensure_fresh())
        clock.advance(601)
        rows.append(candidate_row("c-jane", "Jane Doe", linkedin=JANE))
        fake_ashby.delay = 0.01

        async def scenario():
            scheduler.refresh_in_background()
            result = await resolver.resolve_by_linkedin(linkedin_url=JANE)
            await scheduler.wait_idle()
            return result

        result = asyncio.run(scenario())

        assert result["strategy"] == "index_refresh"
        assert result["candidate"]["id"] == "c-jane"
        list_calls = [c for c in fake_ashby.calls if c["method"] == "candidate.list"]
        assert len(list_calls) == 3
        assert "syncToken" in list_calls[1]["payload"]
        assert "syncToken" not in list_calls[2]["payload"]


class TestValidation:
    def test_missing_url_and_handle(self, resolver, scheduler):
        with pytest.raises(ValidationError):
            resolve(resolver, scheduler)

    def test_non_linkedin_url(self, resolver, scheduler):
        with pytest.raises(ValidationError):
            resolve(resolver, scheduler, linkedin_url="https://example.com/in/jane-doe")


class TestMatchInIndex:
    def test_union_of_keys_is_deduplicated(self, fake_ashby, scheduler):
        fake_ashby.on("candidate.list", paged_list([[
            candidate_row("c-jane", "Jane", linkedin=JANE, linkedInUrl="https://linkedin.com/in/jdoe"),
        ]]))
        index = asyncio.run(scheduler.ensure_fresh())

        matches = match_in_index(index, [JANE_KEY, "linkedin.com/in/jdoe"])

        assert [m.id for m in matches] == ["c-jane"]
