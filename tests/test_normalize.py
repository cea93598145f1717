"""
Tests for LinkedIn key normalization and timestamp helpers.
"""

import pytest
from atsrelay.normalize import (
    normalize_linkedin_key,
    sanitize_linkedin_handle,
    linkedin_keys_for,
    to_epoch_ms,
    iso_from_ms,
)


class TestNormalizeLinkedInKey:
    """The same profile must always produce the same key."""

    @pytest.mark.parametrize("url", [
        "https://www.linkedin.com/in/jane-doe",
        "http://linkedin.com/in/jane-doe/",
        "linkedin.com/in/jane-doe",
        "www.linkedin.com/in/jane-doe/",
        "HTTPS://WWW.LinkedIn.com/in/Jane-Doe",
        "https://www.linkedin.com/in/jane-doe/?x=1#y",
        "https://www.linkedin.com/in/jane-doe#experience",
        "  https://linkedin.com/in/jane-doe?trk=public_profile  ",
    ])
    def test_equivalent_forms_share_a_key(self, url):
        assert normalize_linkedin_key(url) == "linkedin.com/in/jane-doe"

    def test_non_linkedin_url_has_no_key(self):
        assert normalize_linkedin_key("https://github.com/jane-doe") == ""
        assert normalize_linkedin_key("") == ""
        assert normalize_linkedin_key(None) == ""

    def test_subdomains_keep_their_prefix(self):
        assert normalize_linkedin_key("https://uk.linkedin.com/in/jane") == "uk.linkedin.com/in/jane"


class TestHandles:
    def test_strips_at_sign(self):
        assert sanitize_linkedin_handle("@jane-doe") == "jane-doe"

    def test_accepts_pasted_url(self):
        assert sanitize_linkedin_handle("https://www.linkedin.com/in/jane-doe/") == "jane-doe"

    def test_blank(self):
        assert sanitize_linkedin_handle("   ") == ""

    def test_keys_from_url_and_handle_are_deduplicated(self):
        keys = linkedin_keys_for("https://www.linkedin.com/in/jane-doe/", "jane-doe")
        assert keys == ["linkedin.com/in/jane-doe"]

    def test_keys_from_distinct_url_and_handle(self):
        keys = linkedin_keys_for("https://linkedin.com/in/jane-doe", "@jdoe")
        assert keys == ["linkedin.com/in/jane-doe", "linkedin.com/in/jdoe"]

    def test_no_keys(self):
        assert linkedin_keys_for(None, None) == []
        assert linkedin_keys_for("https://example.com/jane", "") == []


class TestEpochMs:
    def test_seconds_become_ms(self):
        assert to_epoch_ms(1_700_000_000) == 1_700_000_000_000

    def test_ms_stay_ms(self):
        assert to_epoch_ms(1_700_000_000_123) == 1_700_000_000_123

    def test_iso_string(self):
        assert to_epoch_ms("2024-01-01T00:00:00Z") == 1_704_067_200_000

    def test_garbage_is_zero(self):
        assert to_epoch_ms("not a date") == 0
        assert to_epoch_ms(None) == 0
        assert to_epoch_ms("") == 0

    def test_iso_round_trip(self):
        assert iso_from_ms(1_704_067_200_000) == "2024-01-01T00:00:00.000Z"
        assert iso_from_ms(0) == ""
