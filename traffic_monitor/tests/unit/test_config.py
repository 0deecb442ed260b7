import pytest

from traffic_monitor.config import load_db_config, load_monitor_config


def test_load_monitor_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TRAFFIC_BEACON_PATH",
        "TRAFFIC_ADMIN_PREFIX",
        "TRAFFIC_REST_PREFIXES",
        "TRAFFIC_DEDUP_TTL_SECONDS",
        "TRAFFIC_DEDUP_BACKEND",
        "TRAFFIC_LOCAL_HOSTS",
        "TRAFFIC_NONCE_HEADER",
        "TRAFFIC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    config = load_monitor_config()

    assert config.beacon_path == "/traffic/beacon"
    assert config.admin_prefix == "/admin"
    assert config.rest_prefixes == ("/api/",)
    assert config.dedup_ttl_seconds == 60
    assert config.dedup_backend == "memory"
    assert config.local_hosts == ("localhost",)
    assert config.nonce_header == "X-Traffic-Nonce"
    assert config.log_level == "INFO"


def test_load_monitor_config_parses_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRAFFIC_ADMIN_PREFIX", "/manage/")
    monkeypatch.setenv("TRAFFIC_REST_PREFIXES", "/api/, /wp-json/")
    monkeypatch.setenv("TRAFFIC_DEDUP_TTL_SECONDS", "120")
    monkeypatch.setenv("TRAFFIC_DEDUP_BACKEND", "Redis")
    monkeypatch.setenv("TRAFFIC_REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("TRAFFIC_LOCAL_HOSTS", "localhost,127.0.0.1")
    monkeypatch.setenv("TRAFFIC_LOG_LEVEL", "debug")

    config = load_monitor_config()

    assert config.admin_prefix == "/manage"
    assert config.rest_prefixes == ("/api/", "/wp-json/")
    assert config.dedup_ttl_seconds == 120
    assert config.dedup_backend == "redis"
    assert config.redis_url == "redis://cache:6379/2"
    assert config.local_hosts == ("localhost", "127.0.0.1")
    assert config.log_level == "DEBUG"


def test_load_monitor_config_rejects_unknown_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRAFFIC_DEDUP_BACKEND", "memcached")
    with pytest.raises(ValueError):
        load_monitor_config()


def test_load_monitor_config_rejects_non_positive_ttl(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRAFFIC_DEDUP_TTL_SECONDS", "0")
    with pytest.raises(ValueError):
        load_monitor_config()


def test_load_db_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_NAME", "traffic")

    config = load_db_config()

    assert config["host"] == "db.internal"
    assert config["database"] == "traffic"
    assert set(config) == {"host", "port", "database", "user", "password"}
