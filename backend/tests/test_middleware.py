"""Tests for request-id and logging middleware helpers."""

import pytest

from clientportal.middleware.logging import webhook_source
from clientportal.middleware.request_id import REQUEST_ID_HEADER, resolve_request_id


@pytest.mark.unit
class TestRequestId:
    def test_reuses_caller_id(self):
        assert resolve_request_id("  abc-123 ") == "abc-123"

    def test_mints_id_when_missing_or_unusable(self):
        for incoming in (None, "", "   ", "x" * 129, "bad\nid"):
            minted = resolve_request_id(incoming)
            assert len(minted) == 36
            assert minted != incoming

    @pytest.mark.api
    async def test_echoed_on_response(self, api_client):
        response = await api_client.get("/api/v1/health", headers={REQUEST_ID_HEADER: "req-42"})

        assert response.headers[REQUEST_ID_HEADER] == "req-42"


@pytest.mark.unit
class TestWebhookSource:
    def test_names_integration(self):
        assert webhook_source("/api/v1/webhook/pabbly") == "pabbly"
        assert webhook_source("/api/v1/webhook/ghl/") == "ghl"

    def test_other_paths(self):
        assert webhook_source("/api/v1/webhook") is None
        assert webhook_source("/api/v1/projects/") is None
