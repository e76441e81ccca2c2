"""Shared fixtures: fake HTTP session and responses."""

import json
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from redmine_connector.adapters.redmine.client import RedmineApiClient
from redmine_connector.core.ports.config_provider import TrackerConfig, TransportConfig


BASE_URL = "https://redmine.example.com"
API_KEY = "secret-key"


def make_response(status: int = 200, body: Any = None, headers: Optional[dict] = None) -> MagicMock:
    """A MagicMock standing in for requests.Response."""
    if isinstance(body, (dict, list)):
        text = json.dumps(body)
    elif isinstance(body, bytes):
        text = body.decode("latin-1")
    else:
        text = body or ""

    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.text = text
    response.content = body if isinstance(body, bytes) else text.encode("utf-8")
    response.headers = headers or {}
    response.json.side_effect = lambda: json.loads(text)
    return response


@pytest.fixture
def http_response():
    return make_response


@pytest.fixture
def session():
    """Fake requests.Session; set ``request.side_effect`` or ``return_value``."""
    fake = MagicMock()
    fake.headers = {}
    fake.request.return_value = make_response(200, {})
    return fake


@pytest.fixture
def api_client(session):
    return RedmineApiClient(
        base_url=BASE_URL + "/",
        api_key=API_KEY,
        max_retry_attempts=3,
        retry_delay=0.5,
        session=session,
    )


@pytest.fixture
def tracker_config():
    return TrackerConfig(url=BASE_URL, api_key=API_KEY, project_id="demo")


@pytest.fixture
def transport_config():
    return TransportConfig(fetch_batch_size=3, max_bulk_batch_size=2)


def requested(session: MagicMock) -> list[tuple[str, str, dict]]:
    """(method, url, params) of every request made on a fake session."""
    calls = []
    for call in session.request.call_args_list:
        method, url = call.args[0], call.args[1]
        calls.append((method, url, dict(call.kwargs.get("params") or {})))
    return calls
