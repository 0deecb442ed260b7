"""Pytest configuration for traffic monitor tests."""

from __future__ import annotations

import os
from typing import Any, Sequence

import pytest
from fastapi import Request

from traffic_monitor.models.request_log import REQUEST_LOG_COLUMNS

# Set default environment variables before traffic_monitor.api is imported;
# it builds a module-level app from them.
os.environ.setdefault("TRAFFIC_JWT_SECRET", "test-jwt-secret-67890")
os.environ.setdefault("TRAFFIC_COOKIE_NAME", "traffic_monitor_auth_test")
os.environ.setdefault("TRAFFIC_DEDUP_BACKEND", "memory")
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5433")


class FakeLogSink:
    """In-memory LogSink that also answers the admin queries."""

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.records: list = []
        self.fail_inserts = False
        self._next_id = 1

    def insert(self, record) -> bool:
        if self.fail_inserts:
            return False
        self.records.append(record)
        row = record.to_row()
        self.rows[self._next_id] = {"id": self._next_id, **{column: row[column] for column in REQUEST_LOG_COLUMNS}}
        self._next_id += 1
        return True

    def query(self, search=None, orderby=None, order=None, page=1, per_page=10) -> dict[str, Any]:
        items = list(self.rows.values())
        if search:
            needle = search.lower()
            items = [row for row in items if any(needle in str(value).lower() for value in row.values())]
        items.sort(key=lambda row: row["id"], reverse=(order or "desc").lower() != "asc")
        start = (page - 1) * per_page
        return {
            "items": items[start:start + per_page],
            "total_count": len(items),
            "page": page,
            "per_page": per_page,
            "total_pages": -(-len(items) // per_page),
        }

    def get(self, request_id: int) -> dict[str, Any] | None:
        return self.rows.get(request_id)

    def get_selected(self, ids: Sequence[int]) -> list[dict[str, Any]]:
        return [self.rows[i] for i in sorted(ids) if i in self.rows]

    def get_all(self) -> list[dict[str, Any]]:
        return list(self.rows.values())

    def count_all(self) -> int:
        return len(self.rows)

    def delete(self, ids: Sequence[int]) -> int:
        deleted = [i for i in ids if self.rows.pop(i, None) is not None]
        return len(deleted)

    def delete_all(self) -> None:
        self.rows.clear()


@pytest.fixture
def fake_sink() -> FakeLogSink:
    return FakeLogSink()


@pytest.fixture
def monitor_config():
    from traffic_monitor.config import load_monitor_config

    return load_monitor_config()


@pytest.fixture
def auth_config():
    from traffic_monitor.auth.config import load_auth_config

    return load_auth_config()


@pytest.fixture
def app(monitor_config, auth_config, fake_sink):
    """App wired to the fake sink and a fresh in-memory dedup store."""
    from fastapi.responses import HTMLResponse

    from traffic_monitor.api import create_app, traffic_nonce
    from traffic_monitor.core.dedup import DedupGuard

    application = create_app(monitor_config, fake_sink, DedupGuard(), auth_config)

    @application.get("/blog/hello-world", response_class=HTMLResponse)
    def blog_post():
        return "<html><body>Hello</body></html>"

    @application.get("/blog/with-beacon", response_class=HTMLResponse)
    def blog_post_with_beacon(request: Request):
        return f'<html><body><script data-nonce="{traffic_nonce(request)}"></script></body></html>'

    @application.get("/api/status")
    def api_status():
        return {"ok": True}

    return application


@pytest.fixture
def client(app):
    """Provide a FastAPI TestClient for integration tests."""
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def admin_cookie(auth_config) -> dict[str, str]:
    from traffic_monitor.auth.jwt_service import generate_token

    payload = generate_token(auth_config, "admin-1", roles=["admin"])
    return {auth_config.cookie_name: payload.token}
