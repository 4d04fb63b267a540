"""Tests for exception handlers and request logging middleware."""

import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from Koyn_Finance.utils.exceptions import (
    AuthError,
    InvalidRequestError,
    NotFoundError,
    QuotaExceededError,
    UpstreamUnavailableError,
)
from Koyn_Finance.web.middleware import RequestLoggingMiddleware, register_exception_handlers


@pytest.fixture()
def error_client() -> TestClient:
    """Minimal app whose routes raise each domain error."""
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(RequestLoggingMiddleware)

    errors: dict[str, Exception] = {
        "auth": AuthError("no token"),
        "quota": QuotaExceededError(used=1, limit=1, plan="free"),
        "invalid": InvalidRequestError("bad", error="Invalid interval"),
        "missing": NotFoundError("nothing"),
        "upstream": UpstreamUnavailableError("fmp down", symbol="AAPL", source="fmp"),
    }

    @app.get("/raise/{name}")
    async def raise_error(name: str) -> None:
        raise errors[name]

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return TestClient(app, raise_server_exceptions=False)


class TestExceptionHandlers:
    def test_auth_error(self, error_client: TestClient) -> None:
        resp = error_client.get("/raise/auth")
        assert resp.status_code == 401
        body = resp.json()
        assert body["error"] == "Unauthorized"
        assert body["subscription_required"] is True

    def test_quota_error(self, error_client: TestClient) -> None:
        resp = error_client.get("/raise/quota")
        assert resp.status_code == 429
        assert resp.json()["plan"] == "free"

    def test_invalid_request(self, error_client: TestClient) -> None:
        resp = error_client.get("/raise/invalid")
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid interval", "message": "bad"}

    def test_not_found(self, error_client: TestClient) -> None:
        resp = error_client.get("/raise/missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "No data found"

    def test_upstream_error(self, error_client: TestClient) -> None:
        resp = error_client.get("/raise/upstream")
        assert resp.status_code == 502
        assert resp.json()["message"] == "fmp down"


class TestRequestLogging:
    def test_request_logged_at_info(
        self, error_client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="Koyn_Finance.web.middleware"):
            error_client.get("/raise/missing")
        assert any("GET /raise/missing -> 404" in r.getMessage() for r in caplog.records)

    def test_health_logged_at_debug(
        self, error_client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="Koyn_Finance.web.middleware"):
            error_client.get("/api/health")
        assert not any("/api/health" in r.getMessage() for r in caplog.records)
