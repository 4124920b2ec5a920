"""
Tests for CORS, security headers and Database SSL configuration.

These tests verify:
1. CORS never falls back to ["*"]
2. Security headers are present on every response
3. Database SSL mode configuration works correctly
"""

import logging
import ssl
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from engage_core.database.engine import _get_ssl_context, create_engine_for_url
from engage_core.providers import ConfigurationProvider
from engage_core.server import create_base_app


def _cors_origins(app) -> list[str]:
    for middleware in app.user_middleware:
        if hasattr(middleware, "kwargs") and "allow_origins" in middleware.kwargs:
            return middleware.kwargs["allow_origins"]
    raise AssertionError("CORS middleware not installed")


# =============================================================================
# CORS Security Tests
# =============================================================================

class TestCORSSecurity:
    """
    Tests for CORS middleware configuration.

    Verifies:
    - BASE_URL is the allowed origin
    - Debug mode adds localhost origins
    - Without BASE_URL outside debug, every cross-origin request is blocked
    """

    def test_cors_includes_base_url(self, mock_config_factory):
        """Test: BASE_URL is included in allowed origins."""
        config = mock_config_factory({
            "server.base_url": "https://vault.example.com",
            "app.debug": False,
        })

        origins = _cors_origins(create_base_app(config))

        assert origins == ["https://vault.example.com"]

    def test_cors_does_not_fallback_to_wildcard(self, mock_config_factory, caplog):
        """Test: CORS does NOT use ["*"] when BASE_URL is missing."""
        config = mock_config_factory({"server.base_url": "", "app.debug": False})

        with caplog.at_level(logging.ERROR):
            origins = _cors_origins(create_base_app(config))

        assert origins == []
        assert any("CRITICAL" in record.message for record in caplog.records)

    def test_cors_allows_localhost_in_debug_mode(self, mock_config_factory):
        """Test: Debug mode allows localhost origins."""
        config = mock_config_factory({
            "server.base_url": "https://dev.example.com",
            "app.debug": True,
        })

        origins = _cors_origins(create_base_app(config))

        assert "http://localhost:8000" in origins
        assert "http://127.0.0.1:8000" in origins
        assert "https://dev.example.com" in origins
        assert "*" not in origins


# =============================================================================
# Application Tests
# =============================================================================

class TestApplication:
    """Integration tests for the application factory."""

    @pytest.fixture
    def client(self, mock_env_vars):
        return TestClient(create_base_app(ConfigurationProvider().load()))

    def test_health(self, client):
        """Test: health endpoint responds."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "Engage Vault"}

    def test_security_headers(self, client):
        """Test: security headers are added to responses."""
        response = client.get("/health")

        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("Cache-Control") == "no-store"
        assert "Strict-Transport-Security" not in response.headers

    def test_hsts_on_https(self, mock_env_vars):
        """Test: HSTS is sent for https requests."""
        client = TestClient(
            create_base_app(ConfigurationProvider().load()), base_url="https://testserver"
        )

        response = client.get("/health")
        assert "max-age=31536000" in response.headers.get("Strict-Transport-Security", "")

    def test_routes_registered(self, client):
        """Test: secrets and webhook routes are mounted."""
        paths = set(client.app.openapi()["paths"])

        assert "/tenants/{tenant_id}/secrets/{key}" in paths
        assert "/tenants/{tenant_id}/secrets/rotate" in paths
        for provider in ("meta", "shopify", "stripe", "woocommerce"):
            assert f"/webhooks/{provider}" in paths


# =============================================================================
# Database SSL Security Tests
# =============================================================================

class TestDatabaseSSLConfiguration:
    """
    Tests for database SSL configuration.

    Verifies:
    - SSL mode environment variable is respected
    - verify-full mode requires certificate path
    """

    @pytest.fixture(autouse=True)
    def reset_env(self, monkeypatch):
        """Reset SSL-related environment variables before each test."""
        monkeypatch.delenv("DATABASE_SSL_MODE", raising=False)
        monkeypatch.delenv("DATABASE_SSL_CERT_PATH", raising=False)

    def test_ssl_mode_default_is_require(self):
        """Test: Default SSL mode is 'require' without verification."""
        ctx = _get_ssl_context()

        assert isinstance(ctx, ssl.SSLContext)
        assert ctx.check_hostname is False
        assert ctx.verify_mode == ssl.CERT_NONE

    def test_ssl_mode_disable_returns_none(self, monkeypatch, caplog):
        """Test: 'disable' mode returns None and logs warning."""
        monkeypatch.setenv("DATABASE_SSL_MODE", "disable")

        with caplog.at_level(logging.WARNING):
            ctx = _get_ssl_context()

        assert ctx is None
        assert any("SSL is disabled" in record.message for record in caplog.records)

    def test_ssl_mode_verify_full_without_cert_falls_back(self, monkeypatch, caplog):
        """Test: verify-full without cert path falls back to require mode."""
        monkeypatch.setenv("DATABASE_SSL_MODE", "verify-full")

        with caplog.at_level(logging.ERROR):
            ctx = _get_ssl_context()

        assert ctx.verify_mode == ssl.CERT_NONE
        assert any("requires DATABASE_SSL_CERT_PATH" in record.message for record in caplog.records)

    def test_ssl_mode_verify_full_with_cert(self, monkeypatch, tmp_path):
        """Test: verify-full with a cert path builds a verifying context."""
        cert_file = tmp_path / "ca.crt"
        cert_file.write_text("dummy cert content")
        monkeypatch.setenv("DATABASE_SSL_MODE", "verify-full")
        monkeypatch.setenv("DATABASE_SSL_CERT_PATH", str(cert_file))

        mock_ctx = MagicMock(spec=ssl.SSLContext)
        with patch(
            "engage_core.database.engine.ssl.create_default_context", return_value=mock_ctx
        ) as mock_create:
            ctx = _get_ssl_context()

        mock_create.assert_called_once_with(cafile=str(cert_file))
        assert ctx is mock_ctx
        assert mock_ctx.check_hostname is True
        assert mock_ctx.verify_mode == ssl.CERT_REQUIRED


class TestEngineCreation:
    """Tests for create_engine_for_url."""

    def test_empty_url_raises(self):
        """Test: missing DATABASE_URL is a startup error."""
        with pytest.raises(RuntimeError):
            create_engine_for_url("")

    def test_sqlite_engine(self):
        """Test: SQLite URLs build an aiosqlite engine."""
        engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
        assert engine.dialect.name == "sqlite"
