"""CSV export of logged requests."""

from __future__ import annotations

import csv
import io
import secrets
import time
from typing import Any, Sequence


def export_filename(token: str | None = None, timestamp: int | None = None) -> str:
    """Download name of the form traffic-log-<token>-<timestamp>.csv."""
    if token is None:
        token = secrets.token_hex(5)
    if timestamp is None:
        timestamp = int(time.time())
    return f"traffic-log-{token}-{timestamp}.csv"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def rows_to_csv(rows: Sequence[dict[str, Any]]) -> str:
    """Render rows as CSV.

    The header row holds the column names of the first row. Every value is
    double-quoted, with embedded quotes doubled.
    """
    if not rows:
        return ""
    columns = list(rows[0].keys())
    buffer = io.StringIO()
    buffer.write(",".join(columns) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in columns])
    return buffer.getvalue()
