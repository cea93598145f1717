"""
Tests for request validation.
"""

import pytest

from atsrelay.schema import validate_lookup_request, validate_upload_request


class TestValidateUploadRequest:
    def test_valid_request(self):
        assert validate_upload_request({"gem_candidate_id": "g1", "job_id": "j1", "run_id": "r1"}) == []

    def test_missing_fields(self):
        errors = validate_upload_request({})
        assert "Missing required field: gem_candidate_id" in errors
        assert "Missing required field: job_id" in errors

    def test_blank_field(self):
        errors = validate_upload_request({"gem_candidate_id": "  ", "job_id": "j1"})
        assert errors == ["Field 'gem_candidate_id' must be a non-empty string"]

    def test_optional_fields_must_be_strings(self):
        errors = validate_upload_request({"gem_candidate_id": "g1", "job_id": "j1", "write_confirmation": 1})
        assert errors == ["Field 'write_confirmation' must be a string if provided"]


class TestValidateLookupRequest:
    @pytest.mark.parametrize(
        "data",
        [
            {"linkedin_url": "https://www.linkedin.com/in/jane-doe"},
            {"linkedin_url": "linkedin.com/in/jane-doe"},
            {"linkedin_handle": "@jane-doe"},
        ],
    )
    def test_valid(self, data):
        assert validate_lookup_request(data) == []

    def test_url_or_handle_required(self):
        assert validate_lookup_request({"profile_name": "Jane"}) == ["Provide linkedin_url or linkedin_handle"]

    def test_malformed_absolute_url(self):
        errors = validate_lookup_request({"linkedin_url": "https://"})
        assert errors == ["Field 'linkedin_url' must be a valid absolute URL (scheme + host)"]

    def test_type_errors(self):
        errors = validate_lookup_request({"linkedin_handle": "jane", "profile_name": 3})
        assert errors == ["Field 'profile_name' must be a string if provided"]
