"""
Tests for source attribution matching.
"""

import asyncio

from atsrelay.config import DEFAULT_SOURCE_NAMES
from atsrelay.sources import list_sources, match_source


NAMES = list(DEFAULT_SOURCE_NAMES)


class TestMatchSource:
    def test_exact_title_wins_over_earlier_partial(self):
        sources = [
            {"id": "s1", "title": "Gem outreach"},
            {"id": "s2", "title": "Sourced: Gem"},
        ]
        source, strategy = match_source(sources, NAMES)
        assert source["id"] == "s2"
        assert strategy == "exact:sourced: gem"

    def test_second_name_exact(self):
        sources = [{"id": "s1", "title": "Gem outreach"}, {"id": "s2", "title": "GEM"}]
        source, strategy = match_source(sources, NAMES)
        assert source["id"] == "s2"
        assert strategy == "exact:gem"

    def test_contains_all_words(self):
        sources = [{"id": "s1", "title": "Gem (legacy)"}, {"id": "s2", "title": "Sourced via Gem"}]
        source, strategy = match_source(sources, NAMES)
        assert source["id"] == "s2"
        assert strategy == "contains:sourced+gem"

    def test_contains_single_word(self):
        source, strategy = match_source([{"id": "s1", "title": "Gem (legacy)"}], NAMES)
        assert source["id"] == "s1"
        assert strategy == "contains:gem"

    def test_archived_sources_are_skipped(self):
        sources = [{"id": "s1", "title": "Sourced: Gem", "isArchived": True}]
        assert match_source(sources, NAMES) == (None, "none")

    def test_no_match(self):
        assert match_source([{"id": "s1", "title": "Referral"}], NAMES) == (None, "none")


class TestListSources:
    def test_list_sources_drops_non_objects(self, fake_ashby):
        fake_ashby.reply("source.list", [{"id": "s1", "title": "Gem"}, "junk"])
        sources = asyncio.run(list_sources(fake_ashby))
        assert sources == [{"id": "s1", "title": "Gem"}]
        assert fake_ashby.calls[0]["payload"] == {}
