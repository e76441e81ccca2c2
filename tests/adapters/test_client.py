"""Tests for the low-level Redmine HTTP client."""

import logging

import pytest
import requests

from redmine_connector.adapters.redmine.client import RedmineApiClient
from redmine_connector.core.ports.issue_tracker import (
    AuthenticationError,
    IssueTrackerError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    TransientError,
    ValidationError,
)

from conftest import API_KEY, BASE_URL, make_response, requested


class TestRequests:
    """Tests for request construction."""

    def test_get_adds_key_and_returns_text(self, api_client, session):
        session.request.return_value = make_response(200, '{"issues":[]}')

        body = api_client.get("issues.json", params={"project_id": "demo"})

        assert body == '{"issues":[]}'
        method, url, params = requested(session)[0]
        assert method == "GET"
        assert url == f"{BASE_URL}/issues.json"
        assert params == {"project_id": "demo", "key": API_KEY}

    def test_session_headers(self, api_client, session):
        assert session.headers["Accept"] == "application/json"
        assert "User-Agent" in session.headers

    def test_post_sends_utf8_json(self, api_client, session):
        api_client.post("issues.json", '{"issue":{"subject":"Grüße"}}')

        call = session.request.call_args
        assert call.args[0] == "POST"
        assert call.kwargs["data"] == '{"issue":{"subject":"Grüße"}}'.encode("utf-8")
        assert call.kwargs["headers"]["Content-Type"].startswith("application/json")

    def test_post_binary_uses_octet_stream(self, api_client, session):
        api_client.post_binary("uploads.json", b"\x00\x01")

        call = session.request.call_args
        assert call.kwargs["data"] == b"\x00\x01"
        assert call.kwargs["headers"]["Content-Type"] == "application/octet-stream"

    def test_absolute_url_with_key_is_not_given_another(self, api_client, session):
        session.request.return_value = make_response(200, b"data")
        url = f"{BASE_URL}/attachments/download/1/a.bin?key=other"

        content = api_client.download(url)

        assert content == b"data"
        _, called_url, params = requested(session)[0]
        assert called_url == url
        assert "key" not in params

    def test_api_key_is_masked_in_logs(self, api_client, session, caplog):
        with caplog.at_level(logging.DEBUG, logger="RedmineApiClient"):
            api_client.get("issues.json")

        assert API_KEY not in caplog.text
        assert "key=***" in caplog.text


class TestErrorMapping:
    """Tests for HTTP status to exception mapping."""

    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, PermissionError),
        (404, NotFoundError),
        (500, IssueTrackerError),
    ])
    def test_status_codes(self, api_client, session, status, error):
        session.request.return_value = make_response(status, "boom")

        with pytest.raises(error) as exc_info:
            api_client.delete("issues/1.json")

        assert exc_info.value.issue_key == "issues/1.json"

    def test_validation_errors_are_kept_verbatim(self, api_client, session):
        session.request.return_value = make_response(
            422, {"errors": ["Subject cannot be blank", "Status is invalid"]}
        )

        with pytest.raises(ValidationError) as exc_info:
            api_client.put("issues/1.json", "{}")

        assert exc_info.value.errors == ["Subject cannot be blank", "Status is invalid"]
        assert "Subject cannot be blank" in str(exc_info.value)

    def test_connection_error_is_transient_with_cause(self, api_client, session):
        cause = requests.exceptions.ConnectionError("refused")
        session.request.side_effect = cause

        with pytest.raises(TransientError) as exc_info:
            api_client.post("issues.json", "{}")

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.cause is cause

    def test_gateway_error_is_transient(self, api_client, session):
        session.request.return_value = make_response(503, "down")

        with pytest.raises(TransientError):
            api_client.delete("issues/1.json")


class TestRetries:
    """Tests for the GET retry policy mounted on the session."""

    @pytest.fixture
    def real_client(self):
        client = RedmineApiClient(
            base_url=BASE_URL,
            api_key=API_KEY,
            max_retry_attempts=3,
            retry_delay=0.5,
            session=requests.Session(),
        )
        yield client
        client.close()

    def test_retry_is_mounted_for_both_schemes(self, real_client):
        for scheme in ("http://redmine.local/", BASE_URL):
            adapter = real_client._session.get_adapter(scheme)
            assert adapter.max_retries is real_client.retry

    def test_retry_policy(self, real_client):
        retry = real_client.retry

        assert retry.total == 2
        assert retry.backoff_factor == 0.5
        assert set(retry.status_forcelist) == {429, 502, 503, 504}
        assert retry.respect_retry_after_header

    def test_only_get_is_replayed(self, real_client):
        retry = real_client.retry

        assert retry.is_retry("GET", 503)
        assert retry.is_retry("GET", 429, has_retry_after=True)
        assert not retry.is_retry("POST", 503)
        assert not retry.is_retry("PUT", 502)
        assert not retry.is_retry("DELETE", 504)

    def test_client_errors_are_not_retried(self, real_client):
        assert not real_client.retry.is_retry("GET", 404)
        assert not real_client.retry.is_retry("GET", 422)

    def test_single_attempt_means_no_retries(self, session):
        client = RedmineApiClient(BASE_URL, API_KEY, max_retry_attempts=1, session=session)

        assert client.retry.total == 0

    def test_last_gateway_answer_is_transient(self, api_client, session):
        session.request.return_value = make_response(504, "timeout")

        with pytest.raises(TransientError):
            api_client.get("issues.json")

        assert session.request.call_count == 1

    def test_last_rate_limit_answer_keeps_retry_after(self, api_client, session):
        session.request.return_value = make_response(429, "", headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            api_client.get("issues.json")

        assert exc_info.value.retry_after == 7.0

    def test_retry_error_is_transient(self, api_client, session):
        cause = requests.exceptions.RetryError("too many 503 error responses")
        session.request.side_effect = cause

        with pytest.raises(TransientError) as exc_info:
            api_client.get("issues.json")

        assert exc_info.value.cause is cause

    def test_refused_connection_is_transient_after_retries(self):
        client = RedmineApiClient(
            "http://127.0.0.1:9", API_KEY, timeout=2.0, max_retry_attempts=2, retry_delay=0
        )

        with pytest.raises(TransientError):
            client.get("issues.json")
        client.close()
