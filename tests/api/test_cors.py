import pytest
from fastapi import status
from fastapi.testclient import TestClient

from main import app
from app.core.config import settings
from app.core.errors import ConfigurationError
from app.services.payment_gate import PAYMENT_RESPONSE_HEADER


class TestCorsAPI:
    """Browser origins come from CORS_ORIGINS (http://app.testserver in tests)"""

    def test_configured_origin_preflight(self, client: TestClient):
        response = client.options(
            "/session/nonce",
            headers={"Origin": "http://app.testserver", "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["access-control-allow-origin"] == "http://app.testserver"
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_payment_response_header_exposed(self, client: TestClient):
        response = client.get("/health", headers={"Origin": "http://app.testserver"})

        assert response.headers["access-control-allow-origin"] == "http://app.testserver"
        assert PAYMENT_RESPONSE_HEADER.lower() in response.headers["access-control-expose-headers"].lower()

    def test_other_origin_not_allowed(self, client: TestClient):
        response = client.get("/health", headers={"Origin": "http://evil.example"})

        assert response.status_code == status.HTTP_200_OK
        assert "access-control-allow-origin" not in response.headers


class TestStartup:
    def test_unknown_network_stops_boot(self, monkeypatch):
        monkeypatch.setattr(settings, "NETWORK", "base-mainnet")

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass
