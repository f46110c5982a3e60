"""Tests for the web API routes."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient  # noqa: E402

from knotcap.config import KnotConfig  # noqa: E402
from knotcap.session.models import SessionRecord  # noqa: E402
from knotcap.storage.repos import SessionRepo  # noqa: E402


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@pytest.fixture
def app(tmp_path: Path):
    from knotcap.web.app import create_app

    config = KnotConfig(data_dir=tmp_path, config_dir=tmp_path / "config")
    app = run_async(create_app(config))
    yield app
    run_async(app.state.db.close())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def stored(app) -> SessionRecord:
    record = SessionRecord(host="a.com", uri="/x", rsp_status="200", dns_start=1.0)
    run_async(SessionRepo(app.state.db).create(record))
    return record


def test_list_sessions(client, stored):
    response = client.get("/api/sessions")
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [stored.id]


def test_get_session(client, stored):
    response = client.get(f"/api/sessions/{stored.id}")
    assert response.status_code == 200
    assert response.json()["url"] == "http://a.com/x"


def test_get_missing_session(client):
    response = client.get("/api/sessions/nope")
    assert response.status_code == 404
    assert response.json() == {"detail": "Session not found"}


def test_put_and_get_policy(client, simple_policy_path: Path):
    content = simple_policy_path.read_text()
    response = client.put("/api/policies/mine", json={"content": content})
    assert response.status_code == 200
    assert response.json()["rule_count"] == 1

    response = client.get("/api/policies/mine")
    assert "DOMAIN-SUFFIX, example.com, REJECT" in response.json()["content"]
    assert [p["name"] for p in client.get("/api/policies").json()] == ["mine"]


def test_match_policy(client, simple_policy_path: Path):
    client.put("/api/policies/mine", json={"content": simple_policy_path.read_text()})
    response = client.post(
        "/api/policies/mine/match", json={"host": "api.example.com", "uri": "/v1/x"}
    )
    body = response.json()
    assert body["matched"] is True
    assert body["strategy"] == "REJECT"
    assert body["source"] == "policy"


def test_match_unknown_policy(client):
    response = client.post("/api/policies/nope/match", json={"host": "a.com"})
    assert response.status_code == 404


def test_export(client, stored):
    response = client.post("/api/export", json={"kind": "url", "ids": [stored.id]})
    assert response.status_code == 200
    path = Path(response.json()["path"])
    assert path.read_text() == "http://a.com/x\n\n"


def test_export_unknown_kind(client):
    response = client.post("/api/export", json={"kind": "pdf", "ids": []})
    assert response.status_code == 422


def test_match_active_policy_defaults(client):
    response = client.post("/api/match", json={"host": "www.apple.com"})
    body = response.json()
    assert body["policy"] == "Knot(Default)"
    assert body["source"] == "denylist"
    assert body["strategy"] == "DIRECT"


def test_match_active_policy_from_config(app, client, simple_policy_path: Path):
    client.put("/api/policies/mine", json={"content": simple_policy_path.read_text()})
    app.state.config.current_policy = "mine"
    response = client.post("/api/match", json={"host": "api.example.com"})
    body = response.json()
    assert body["policy"] == "Test"
    assert body["strategy"] == "REJECT"
    assert body["source"] == "policy"
