"""
unified_ai test configuration.
Provides shared fixtures and automatic marker handling for the test suite.
"""
import json
import os
import sys

import httpx
import pytest

# Ensure src/ is importable without an install
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from unified_ai.config import AISettings  # noqa: E402


# ---------------------------------------------------------------------------
# Auto-skip integration tests when credentials are missing
# ---------------------------------------------------------------------------
def pytest_collection_modifyitems(config, items):
    """Skip integration-marked tests if no provider credentials are set."""
    skip_integration = pytest.mark.skip(reason="Provider credentials not set")
    has_creds = any(
        os.environ.get(var)
        for var in ("OPENAI_API_KEY", "GEMINI_API_KEY", "CLOUDFLARE_API_TOKEN")
    )
    for item in items:
        if "integration" in item.keywords and not has_creds:
            item.add_marker(skip_integration)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    """Settings with every backend's credentials filled in; gateway off."""
    return AISettings(
        openai_api_key="sk-test",
        gemini_api_key="gemini-test",
        cloudflare_account_id="acct-123",
        cloudflare_api_token="cf-token",
    )


@pytest.fixture
def env_override(monkeypatch):
    """Factory fixture to set env vars scoped to a single test.

    Usage:
        def test_something(env_override):
            env_override(OPENAI_API_KEY="sk-test")
    """
    def _set(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key, value)
    return _set


@pytest.fixture
def cf_transport():
    """httpx.MockTransport that replays queued Cloudflare responses.

    Usage:
        transport, calls = cf_transport([{"result": {...}, "success": True}])
    Each queued item is a JSON body (status 200) or a (status, body) tuple.
    Every request is recorded in calls as (method, url, json_body).
    """
    def _make(responses):
        queue = list(responses)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else None
            calls.append((request.method, str(request.url), body))
            item = queue.pop(0)
            status, payload = item if isinstance(item, tuple) else (200, item)
            return httpx.Response(status, json=payload)

        return httpx.MockTransport(handler), calls
    return _make
