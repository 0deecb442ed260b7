"""PostgreSQL-backed request log sink and admin queries."""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Any, Iterator, Protocol, Sequence, runtime_checkable

import psycopg2
from psycopg2.extras import RealDictCursor

from ..config import load_db_config
from ..core.models import RequestRecord
from ..core.pipeline import LogSink
from ..models.request_log import (
    REQUEST_LOG_COLUMNS,
    count_requests,
    create_request_log_table,
    delete_all_requests,
    delete_requests,
    fetch_all,
    fetch_request_by_id,
    fetch_requests_page,
    fetch_selected,
    insert_request,
)

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 10
MAX_PER_PAGE = 100
DEFAULT_ORDERBY = "captured_at"

_SORTABLE_COLUMNS = frozenset(("id",) + REQUEST_LOG_COLUMNS)


def sanitize_orderby(orderby: str | None) -> str:
    """Map a requested sort column onto the whitelist."""
    if orderby and orderby in _SORTABLE_COLUMNS:
        return orderby
    return DEFAULT_ORDERBY


def sanitize_order(order: str | None) -> str:
    if order and order.strip().lower() == "asc":
        return "ASC"
    return "DESC"


def clamp_per_page(per_page: int | None) -> int:
    if not per_page or per_page < 1:
        return DEFAULT_PER_PAGE
    return min(per_page, MAX_PER_PAGE)


@runtime_checkable
class LogStore(LogSink, Protocol):
    """A sink that also backs the admin views and the health check."""

    def query(
        self,
        search: str | None = None,
        orderby: str | None = None,
        order: str | None = None,
        page: int = 1,
        per_page: int | None = DEFAULT_PER_PAGE,
    ) -> dict[str, Any]:
        ...

    def get(self, request_id: int) -> dict[str, Any] | None:
        ...

    def get_selected(self, ids: Sequence[int]) -> list[dict[str, Any]]:
        ...

    def get_all(self) -> list[dict[str, Any]]:
        ...

    def count_all(self) -> int:
        ...

    def delete(self, ids: Sequence[int]) -> int:
        ...

    def delete_all(self) -> None:
        ...


class PostgresLogSink:
    """Writes request records to PostgreSQL and serves the admin views.

    ``insert`` never raises; every other method lets ``psycopg2`` errors
    propagate so the HTTP layer can map them to a response.
    """

    def __init__(self, db_config: dict[str, Any] | None = None) -> None:
        self._db_config = db_config if db_config is not None else load_db_config()

    def connect(self):
        return psycopg2.connect(**self._db_config, cursor_factory=RealDictCursor)

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    def insert(self, record: RequestRecord) -> bool:
        """Persist one record. Returns False if the write failed."""
        try:
            with self._connection() as conn:
                insert_request(conn, record)
            return True
        except psycopg2.Error as e:
            logger.error(
                "Failed to insert request record: %s",
                e,
                extra={"origin_kind": record.origin_kind.value, "path": record.target_path},
            )
            return False

    def create_tables(self) -> None:
        with self._connection() as conn:
            create_request_log_table(conn)
        logger.info("request_log table ready")

    def query(
        self,
        search: str | None = None,
        orderby: str | None = None,
        order: str | None = None,
        page: int = 1,
        per_page: int | None = DEFAULT_PER_PAGE,
    ) -> dict[str, Any]:
        """One page of logged requests plus pagination totals.

        Args:
            search: Case-insensitive substring matched against the searchable columns
            orderby: Sort column; unknown columns fall back to captured_at
            order: "asc" or "desc" (default)
            page: 1-based page number
            per_page: Page size, clamped to MAX_PER_PAGE

        Returns:
            Dict with items, total_count, page, per_page, total_pages
        """
        search = search.strip() if search else None
        per_page = clamp_per_page(per_page)
        page = max(page or 1, 1)
        offset = (page - 1) * per_page

        with self._connection() as conn:
            total_count = count_requests(conn, search)
            items = fetch_requests_page(
                conn,
                search,
                sanitize_orderby(orderby),
                sanitize_order(order),
                per_page,
                offset,
            )

        return {
            "items": items,
            "total_count": total_count,
            "page": page,
            "per_page": per_page,
            "total_pages": math.ceil(total_count / per_page) if total_count else 0,
        }

    def get(self, request_id: int) -> dict[str, Any] | None:
        with self._connection() as conn:
            return fetch_request_by_id(conn, request_id)

    def get_selected(self, ids: Sequence[int]) -> list[dict[str, Any]]:
        with self._connection() as conn:
            return fetch_selected(conn, ids)

    def get_all(self) -> list[dict[str, Any]]:
        with self._connection() as conn:
            return fetch_all(conn)

    def count_all(self) -> int:
        with self._connection() as conn:
            return count_requests(conn)

    def delete(self, ids: Sequence[int]) -> int:
        with self._connection() as conn:
            deleted = delete_requests(conn, ids)
        logger.info("Deleted request records", extra={"count": deleted})
        return deleted

    def delete_all(self) -> None:
        with self._connection() as conn:
            delete_all_requests(conn)
        logger.info("Deleted all request records")
