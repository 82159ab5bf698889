"""
test_integration.py

Integration tests — validate HTTP API contracts via TestClient + SQLite.

These tests exercise the full request-response cycle including:
  - HTTP routing and middleware
  - the rate limiter -> authorizer -> handler pipeline
  - SQLAlchemy ORM with SQLite
  - JSON log formatting

Marked with pytest.mark.integration so CI can run them in a dedicated stage.
"""

import json
import logging

import pytest

from app.core.config import settings
from app.core.limiter import limiter
from app.main import JSONFormatter

pytestmark = pytest.mark.integration


@pytest.fixture
def rate_limited():
    limiter.reset()
    limiter.enabled = True
    yield limiter
    limiter.enabled = False


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health_check_returns_200(client):
    """GET /health must return 200 and report healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "keygate-api"
    assert "version" in body


def test_readiness_check_returns_200(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_readiness_check_returns_503_when_db_down(client, monkeypatch):
    import app.main as main_module

    def _down():
        raise ConnectionError("database unreachable")

    monkeypatch.setattr(main_module, "ping", _down)
    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json() == {"status": "not_ready"}


# ---------------------------------------------------------------------------
# Pipeline ordering
# ---------------------------------------------------------------------------


def test_rate_limiter_runs_before_authorizer(client, system_stats, rate_limited):
    """Once the window is full, even requests without a key get 429, not 400."""
    for _ in range(20):
        assert client.get("/v4/quota").status_code == 400

    response = client.get("/v4/quota")
    assert response.status_code == 429
    assert response.json()["status"] == 429


def test_quota_endpoint_full_flow(client, system_stats, make_user, rate_limited, reload):
    make_user(token="flow-token", req_quota=2, rate_limit=2)
    headers = {"Authorization": "flow-token"}

    first = client.get("/v4/quota", headers=headers)
    second = client.get("/v4/quota", headers=headers)
    third = client.get("/v4/quota", headers=headers)

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert second.json()["req_quota"] == 0
    assert second.json()["statistics"] == {"quota": 2}
    # Rate limiter rejects before the authorizer can report exhausted quota
    assert third.status_code == 429

    stat = reload(system_stats)
    assert stat.success_requests == 2
    assert stat.daily_requests == 2


def test_stats_and_quota_share_the_window(client, system_stats, make_user, rate_limited):
    make_user(token="shared-token", rate_limit=3)
    headers = {"Authorization": "shared-token", "key": settings.ACCESS_KEY}

    assert client.get("/v4/quota", headers=headers).status_code == 200
    assert client.get("/v4/stats", headers=headers).status_code == 200
    assert client.get("/v4/quota", headers=headers).status_code == 200
    assert client.get("/v4/stats", headers=headers).status_code == 429


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def test_json_formatter_includes_request_fields():
    record = logging.LogRecord(
        name="api",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="GET /v4/stats",
        args=(),
        exc_info=None,
    )
    record.request_path = "/v4/stats"
    record.status_code = 200

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "GET /v4/stats"
    assert payload["level"] == "INFO"
    assert payload["request_path"] == "/v4/stats"
    assert payload["status_code"] == 200
    assert "endpoint" not in payload
