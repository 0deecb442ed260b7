import pytest

from traffic_monitor.auth.config import load_auth_config


def test_load_auth_config_requires_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TRAFFIC_JWT_SECRET", raising=False)
    with pytest.raises(ValueError):
        load_auth_config()


def test_load_auth_config_parses_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRAFFIC_JWT_SECRET", "jwt-secret")
    monkeypatch.setenv("TRAFFIC_ALLOWED_ORIGINS", "http://localhost:3000, https://example.com")
    monkeypatch.setenv("TRAFFIC_TOKEN_TTL_SECONDS", "120")
    monkeypatch.setenv("TRAFFIC_ADMIN_ROLE", "owner")

    config = load_auth_config()

    assert config.jwt_secret == "jwt-secret"
    assert config.allowed_origins == ("http://localhost:3000", "https://example.com")
    assert config.token_ttl_seconds == 120
    assert config.admin_role == "owner"


def test_load_auth_config_cookie_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Cookie name and admin role fall back to defaults."""
    monkeypatch.setenv("TRAFFIC_JWT_SECRET", "jwt-secret")
    # Remove test env vars set by conftest.py
    monkeypatch.delenv("TRAFFIC_COOKIE_NAME", raising=False)
    monkeypatch.delenv("TRAFFIC_ADMIN_ROLE", raising=False)

    config = load_auth_config()

    assert config.cookie_name == "traffic_monitor_auth"
    assert config.admin_role == "admin"
    assert config.jwt_issuer is None
