"""Shared fixtures for API tests."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.auth import verify_api_key
from src.config.settings import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Isolate each test from cached settings and a local .env."""
    monkeypatch.delenv("API_KEYS", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def app(engine):
    """App serving the unstarted test engine, with auth bypassed."""
    app = create_app(engine=engine)
    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    return app


@pytest.fixture
def client(app):
    """Client with the lifespan running (engine started, broadcaster up)."""
    with TestClient(app) as client:
        yield client


def _make_threshold(client: TestClient, **overrides: Any) -> dict[str, Any]:
    """POST a threshold and return the created item."""
    body = {
        "name": "High AI Cost per Document",
        "description": "Alert when AI cost per document exceeds $0.50",
        "metric": "ai_cost_per_document",
        "operator": "gt",
        "value": 0.5,
        "severity": "warning",
        "cooldown_minutes": 30,
    }
    body.update(overrides)
    resp = client.post("/thresholds", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _trigger_alert(client: TestClient, providers, value: float = 0.62) -> dict[str, Any]:
    """Create a threshold, breach it, and return the resulting alert."""
    if "ai_cost_per_document" not in providers:
        providers.register("ai_cost_per_document", lambda ctx: value)
    _make_threshold(client)
    resp = client.post("/monitoring/check")
    assert resp.status_code == 200, resp.text
    [alert_id] = resp.json()["alert_ids"]
    return client.get(f"/alerts/{alert_id}").json()
