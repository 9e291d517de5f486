"""Integration tests for JWT authentication.

Validates:
  - /health is public (plain Django view, no DRF).
  - Protected DRF endpoints return 401 without a token or with a bad one.
  - A token obtained from /api/v1/auth/token/ grants access.
"""

import pytest
from django.contrib.auth import get_user_model

pytestmark = pytest.mark.integration

User = get_user_model()

ORDERS_URL = "/api/v1/orders/"


class TestPublicEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestProtectedEndpoints:
    """All DRF endpoints require a valid JWT by default (Fail Closed)."""

    def test_no_token_returns_401(self, api_client):
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401
        assert "Bearer" in response.get("WWW-Authenticate", "")

    def test_settings_endpoint_requires_auth(self, api_client):
        response = api_client.get("/api/v1/fulfillment/settings/")
        assert response.status_code == 401


class TestTokenFlow:
    def test_obtained_token_grants_access(self, api_client):
        User.objects.create_user(username="warehouse", password="s3cret-pass")
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "warehouse", "password": "s3cret-pass"},
            format="json",
        )
        assert response.status_code == 200
        access = response.json()["access"]

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
        assert api_client.get(ORDERS_URL).status_code == 200

    def test_wrong_password(self, api_client):
        User.objects.create_user(username="warehouse", password="s3cret-pass")
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "warehouse", "password": "nope"},
            format="json",
        )
        assert response.status_code == 401
