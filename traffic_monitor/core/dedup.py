"""Short-lived suppression of duplicate log writes.

A page load can be reported twice: once by the server while rendering it
and once more by the page's beacon after it reaches the browser. Both carry
the same nonce, so a nonce + client IP key seen within the TTL is logged
only the first time.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Protocol

import redis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60
_KEY_PREFIX = "traffic_nonce_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mint_nonce() -> str:
    """New per-response nonce for direct requests."""
    return secrets.token_hex(16)


def build_dedup_key(nonce: str, client_ip: str) -> str:
    ip_hash = hashlib.md5(client_ip.encode("utf-8")).hexdigest()
    return f"{_KEY_PREFIX}{nonce}_{ip_hash}"


class DedupStore(Protocol):
    def add_if_absent(self, key: str, ttl_seconds: int, now: datetime | None = None) -> bool:
        """Set key with expiry; return False if it was already present."""
        ...


@dataclass
class DedupEntry:
    expires_at: datetime


class InMemoryDedupStore:
    """Process-local key store with per-key expiry."""

    def __init__(self) -> None:
        self._entries: dict[str, DedupEntry] = {}
        self._lock = Lock()

    def _prune(self, now: datetime) -> None:
        expired_keys = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired_keys:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def add_if_absent(self, key: str, ttl_seconds: int, now: datetime | None = None) -> bool:
        if now is None:
            now = _utcnow()
        with self._lock:
            self._prune(now)
            if key in self._entries:
                return False
            self._entries[key] = DedupEntry(expires_at=now + timedelta(seconds=ttl_seconds))
            return True


class RedisDedupStore:
    """Key store shared by every worker through Redis."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def add_if_absent(self, key: str, ttl_seconds: int, now: datetime | None = None) -> bool:
        # SET NX EX is a single atomic check-and-set; Redis owns the clock.
        return bool(self._client.set(key, 1, nx=True, ex=ttl_seconds))


def build_dedup_store(backend: str, redis_url: str | None = None) -> DedupStore:
    """Create the configured store, falling back to memory if Redis is down."""
    if backend != "redis":
        return InMemoryDedupStore()
    try:
        client = redis.from_url(redis_url or "redis://127.0.0.1:6379/0")
        client.ping()
        logger.info("Dedup store using Redis", extra={"redis_url": redis_url})
        return RedisDedupStore(client)
    except redis.RedisError as e:
        logger.warning("Redis unavailable, dedup falls back to memory: %s", e)
        return InMemoryDedupStore()


class DedupGuard:
    """Decides whether a (nonce, client IP) pair may be logged."""

    def __init__(self, store: DedupStore | None = None, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._store = store if store is not None else InMemoryDedupStore()
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def should_log(self, nonce: str, client_ip: str, now: datetime | None = None) -> bool:
        """Returns True the first time a key is seen within the TTL.

        A True result marks the key as seen, before anything is persisted.
        """
        if not nonce:
            return False
        key = build_dedup_key(nonce, client_ip)
        return self._store.add_if_absent(key, self._ttl_seconds, now=now)
