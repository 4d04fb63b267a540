"""Tests for GET /api/user/access."""

from collections.abc import Callable
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient


class TestAccess:
    def test_no_credential(self, client: TestClient) -> None:
        resp = client.get("/api/user/access")
        assert resp.status_code == 401
        assert resp.json() == {
            "error": "No subscription ID provided",
            "hasAccess": False,
            "isSubscribed": False,
        }

    def test_owner_with_live_subscription(self, client: TestClient) -> None:
        resp = client.get("/api/user/access?id=sub_active&email=Trader@Example.com")
        assert resp.status_code == 200
        assert resp.json() == {
            "hasAccess": True,
            "isSubscribed": True,
            "isActive": True,
            "subscriptionId": "sub_active",
            "email": "Trader@Example.com",
        }

    def test_email_from_header(self, client: TestClient) -> None:
        resp = client.get(
            "/api/user/access?id=sub_active", headers={"x-user-email": "trader@example.com"}
        )
        assert resp.json()["hasAccess"] is True

    def test_email_from_token(self, client: TestClient, make_token: Callable[..., str]) -> None:
        token = make_token(subscriptionId="sub_active", email="trader@example.com")
        resp = client.get("/api/user/access", headers={"Authorization": f"Bearer {token}"})
        assert resp.json()["hasAccess"] is True

    def test_wrong_email(self, client: TestClient) -> None:
        body = client.get("/api/user/access?id=sub_active&email=other@example.com").json()
        assert body["hasAccess"] is False
        assert body["isSubscribed"] is False
        assert body["isActive"] is True

    def test_no_email_at_all(self, client: TestClient) -> None:
        body = client.get("/api/user/access?id=sub_active").json()
        assert body["hasAccess"] is False
        assert body["email"] is None

    def test_inactive(self, client: TestClient) -> None:
        body = client.get("/api/user/access?id=sub_inactive&email=lapsed@example.com").json()
        assert body["hasAccess"] is False
        assert body["isActive"] is False

    def test_not_metered(self, client: TestClient, rate_limiter: AsyncMock) -> None:
        client.get("/api/user/access?id=sub_active&email=trader@example.com")
        rate_limiter.acquire.assert_not_awaited()
