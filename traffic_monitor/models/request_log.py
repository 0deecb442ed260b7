"""Request log data access helpers."""

from __future__ import annotations

from typing import Any, Sequence

from ..core.models import RequestRecord


REQUEST_LOG_COLUMNS = (
    "captured_at",
    "origin_kind",
    "target_path",
    "http_method",
    "referrer",
    "actor_role",
    "client_ip",
    "host",
    "device_class",
    "platform",
    "browser",
    "browser_version",
    "raw_user_agent",
    "origin_header",
    "accept_encoding",
    "accept_language",
    "accept",
    "content_type",
    "connection",
    "cache_control",
    "status_code",
)

# Text casts let one ILIKE pattern match timestamps and status codes too.
SEARCH_COLUMNS = (
    "captured_at::text",
    "target_path",
    "http_method",
    "referrer",
    "actor_role",
    "client_ip",
    "raw_user_agent",
    "origin_header",
    "status_code::text",
)

_SELECT_COLUMNS = ", ".join(("id",) + REQUEST_LOG_COLUMNS)


def create_request_log_table(conn) -> None:
    """Create the request_log table if it does not exist."""
    cursor = conn.cursor()
    try:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS request_log (
                id SERIAL PRIMARY KEY,
                captured_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                origin_kind VARCHAR(16) NOT NULL,
                target_path VARCHAR(255) NOT NULL DEFAULT '',
                http_method VARCHAR(10) NOT NULL DEFAULT '',
                referrer VARCHAR(255) NOT NULL DEFAULT '',
                actor_role VARCHAR(50) NOT NULL DEFAULT 'visitor',
                client_ip VARCHAR(45) NOT NULL DEFAULT '',
                host VARCHAR(255) NOT NULL DEFAULT '',
                device_class VARCHAR(50) NOT NULL DEFAULT '',
                platform VARCHAR(50) NOT NULL DEFAULT '',
                browser VARCHAR(50) NOT NULL DEFAULT '',
                browser_version VARCHAR(50) NOT NULL DEFAULT '',
                raw_user_agent TEXT NOT NULL DEFAULT '',
                origin_header VARCHAR(255) NOT NULL DEFAULT '',
                accept_encoding VARCHAR(255) NOT NULL DEFAULT '',
                accept_language VARCHAR(255) NOT NULL DEFAULT '',
                accept TEXT,
                content_type VARCHAR(255),
                connection VARCHAR(50),
                cache_control VARCHAR(255),
                status_code SMALLINT
            )
            """
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_request_log_captured_at ON request_log (captured_at)"
        )
        conn.commit()
    finally:
        cursor.close()


def insert_request(conn, record: RequestRecord) -> int:
    """Insert one record and return its id."""
    row = record.to_row()
    placeholders = ", ".join(["%s"] * len(REQUEST_LOG_COLUMNS))
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"""
            INSERT INTO request_log ({", ".join(REQUEST_LOG_COLUMNS)})
            VALUES ({placeholders})
            RETURNING id
            """,
            tuple(row[column] for column in REQUEST_LOG_COLUMNS),
        )
        inserted = cursor.fetchone()
        conn.commit()
        return inserted["id"]
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()


def fetch_request_by_id(conn, request_id: int) -> dict[str, Any] | None:
    """Fetch a logged request by id."""
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"SELECT {_SELECT_COLUMNS} FROM request_log WHERE id = %s",
            (request_id,),
        )
        return cursor.fetchone()
    finally:
        cursor.close()


def _search_clause(search: str | None) -> tuple[str, list[Any]]:
    if not search:
        return "", []
    conditions = " OR ".join(f"{column} ILIKE %s" for column in SEARCH_COLUMNS)
    pattern = f"%{search}%"
    return f"WHERE {conditions}", [pattern] * len(SEARCH_COLUMNS)


def count_requests(conn, search: str | None = None) -> int:
    """Count logged requests matching the search term."""
    where_clause, params = _search_clause(search)
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"SELECT COUNT(*) AS count FROM request_log {where_clause}",
            tuple(params),
        )
        return cursor.fetchone()["count"]
    finally:
        cursor.close()


def fetch_requests_page(
    conn,
    search: str | None,
    orderby: str,
    order: str,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    """Fetch one page of logged requests.

    ``orderby`` and ``order`` are interpolated into the query and must already
    be whitelisted by the caller.
    """
    where_clause, params = _search_clause(search)
    params.extend([limit, offset])
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM request_log
            {where_clause}
            ORDER BY {orderby} {order}, id {order}
            LIMIT %s OFFSET %s
            """,
            tuple(params),
        )
        return cursor.fetchall()
    finally:
        cursor.close()


def fetch_selected(conn, ids: Sequence[int]) -> list[dict[str, Any]]:
    """Fetch the listed records, oldest first."""
    if not ids:
        return []
    placeholders = ",".join(["%s"] * len(ids))
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"SELECT {_SELECT_COLUMNS} FROM request_log WHERE id IN ({placeholders}) ORDER BY id",
            tuple(ids),
        )
        return cursor.fetchall()
    finally:
        cursor.close()


def fetch_all(conn) -> list[dict[str, Any]]:
    cursor = conn.cursor()
    try:
        cursor.execute(f"SELECT {_SELECT_COLUMNS} FROM request_log ORDER BY id")
        return cursor.fetchall()
    finally:
        cursor.close()


def delete_requests(conn, ids: Sequence[int]) -> int:
    """Delete the listed records and return how many were removed."""
    if not ids:
        return 0
    placeholders = ",".join(["%s"] * len(ids))
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"DELETE FROM request_log WHERE id IN ({placeholders})",
            tuple(ids),
        )
        deleted = cursor.rowcount
        conn.commit()
        return deleted
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()


def delete_all_requests(conn) -> None:
    cursor = conn.cursor()
    try:
        cursor.execute("TRUNCATE TABLE request_log RESTART IDENTITY")
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()
