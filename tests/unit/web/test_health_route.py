"""Tests for GET /api/health."""

from fastapi.testclient import TestClient


def test_health_reports_configured_upstreams(client: TestClient) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "upstreams": {"fmp": True, "gemini": False, "xai": False},
    }


def test_health_needs_no_credential(client: TestClient) -> None:
    assert client.get("/api/health").status_code == 200
