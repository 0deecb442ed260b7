"""Configuration loading for the traffic monitor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


_DEFAULT_BEACON_PATH = "/traffic/beacon"
_DEFAULT_ADMIN_PREFIX = "/admin"
_DEFAULT_REST_PREFIXES = ("/api/",)
_DEFAULT_CRON_PATHS = ("/cron",)
_DEFAULT_DEDUP_TTL_SECONDS = 60
_DEFAULT_DEDUP_BACKEND = "memory"
_DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"
_DEFAULT_LOCAL_HOSTS = ("localhost",)
_DEFAULT_NONCE_HEADER = "X-Traffic-Nonce"
_DEFAULT_LOG_LEVEL = "INFO"

_DEDUP_BACKENDS = ("memory", "redis")


@dataclass(frozen=True)
class MonitorConfig:
    beacon_path: str
    admin_prefix: str
    rest_prefixes: tuple[str, ...]
    cron_paths: tuple[str, ...]
    dedup_ttl_seconds: int
    dedup_backend: str
    redis_url: str
    local_hosts: tuple[str, ...]
    nonce_header: str
    log_level: str


def _parse_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _parse_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_monitor_config() -> MonitorConfig:
    """Load traffic monitor configuration from environment variables."""
    dedup_backend = os.getenv("TRAFFIC_DEDUP_BACKEND", _DEFAULT_DEDUP_BACKEND).strip().lower()
    if dedup_backend not in _DEDUP_BACKENDS:
        raise ValueError(f"TRAFFIC_DEDUP_BACKEND must be one of: {', '.join(_DEDUP_BACKENDS)}")

    dedup_ttl_seconds = _parse_int(os.getenv("TRAFFIC_DEDUP_TTL_SECONDS"), _DEFAULT_DEDUP_TTL_SECONDS)
    if dedup_ttl_seconds <= 0:
        raise ValueError("TRAFFIC_DEDUP_TTL_SECONDS must be positive")

    beacon_path = os.getenv("TRAFFIC_BEACON_PATH", _DEFAULT_BEACON_PATH).strip() or _DEFAULT_BEACON_PATH
    admin_prefix = os.getenv("TRAFFIC_ADMIN_PREFIX", _DEFAULT_ADMIN_PREFIX).strip().rstrip("/")

    return MonitorConfig(
        beacon_path=beacon_path,
        admin_prefix=admin_prefix or _DEFAULT_ADMIN_PREFIX,
        rest_prefixes=_parse_list(os.getenv("TRAFFIC_REST_PREFIXES"), _DEFAULT_REST_PREFIXES),
        cron_paths=_parse_list(os.getenv("TRAFFIC_CRON_PATHS"), _DEFAULT_CRON_PATHS),
        dedup_ttl_seconds=dedup_ttl_seconds,
        dedup_backend=dedup_backend,
        redis_url=os.getenv("TRAFFIC_REDIS_URL", _DEFAULT_REDIS_URL).strip(),
        local_hosts=_parse_list(os.getenv("TRAFFIC_LOCAL_HOSTS"), _DEFAULT_LOCAL_HOSTS),
        nonce_header=os.getenv("TRAFFIC_NONCE_HEADER", _DEFAULT_NONCE_HEADER).strip() or _DEFAULT_NONCE_HEADER,
        log_level=os.getenv("TRAFFIC_LOG_LEVEL", _DEFAULT_LOG_LEVEL).strip().upper() or _DEFAULT_LOG_LEVEL,
    )


def load_db_config() -> dict[str, Any]:
    """Database connection settings for psycopg2.connect()."""
    return {
        'host': os.getenv('DB_HOST', 'database'),
        'port': os.getenv('DB_PORT', '5432'),
        'database': os.getenv('DB_NAME', 'traffic_monitor'),
        'user': os.getenv('DB_USER', 'traffic_user'),
        'password': os.getenv('DB_PASSWORD', 'traffic_pass'),
    }
