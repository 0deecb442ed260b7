"""Request log domain types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


VISITOR_ROLE = "visitor"
MAX_URL_LENGTH = 255


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OriginKind(str, Enum):
    """How a logged request reached us."""

    DIRECT = "direct"
    BEACON = "beacon"


class RequestKind(str, Enum):
    """Classifier verdict for an inbound request."""

    DIRECT = "direct"
    BEACON = "beacon"
    IGNORE = "ignore"

    @property
    def origin_kind(self) -> Optional[OriginKind]:
        if self is RequestKind.DIRECT:
            return OriginKind.DIRECT
        if self is RequestKind.BEACON:
            return OriginKind.BEACON
        return None


class BeaconStatus(str, Enum):
    LOGGED = "logged"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BeaconAck:
    """Structured acknowledgment returned to beacon callers."""

    status: BeaconStatus
    message: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class RequestRecord:
    """One logged request.

    Fields a given origin cannot observe are ``None`` rather than guessed:
    a beacon reports a page that may have been served from a cache, so the
    headers of that original request and its response status are unknown.
    """

    origin_kind: OriginKind
    target_path: str
    http_method: str
    referrer: str
    actor_role: str
    client_ip: str
    host: str
    device_class: str
    platform: str
    browser: str
    browser_version: str
    raw_user_agent: str
    origin_header: str
    accept_encoding: str
    accept_language: str
    accept: Optional[str] = None
    content_type: Optional[str] = None
    connection: Optional[str] = None
    cache_control: Optional[str] = None
    status_code: Optional[int] = None
    captured_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        # Storage columns are VARCHAR(255).
        if len(self.target_path) > MAX_URL_LENGTH:
            object.__setattr__(self, "target_path", self.target_path[:MAX_URL_LENGTH])
        if len(self.referrer) > MAX_URL_LENGTH:
            object.__setattr__(self, "referrer", self.referrer[:MAX_URL_LENGTH])

    def to_row(self) -> dict[str, Any]:
        """Column mapping for the request_log table."""
        row = asdict(self)
        row["origin_kind"] = self.origin_kind.value
        return row
