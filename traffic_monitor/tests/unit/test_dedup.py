from __future__ import annotations

import hashlib
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import redis

from traffic_monitor.core.dedup import (
    DedupGuard,
    InMemoryDedupStore,
    RedisDedupStore,
    build_dedup_key,
    build_dedup_store,
    mint_nonce,
)


def test_mint_nonce_is_unique_hex() -> None:
    first, second = mint_nonce(), mint_nonce()

    assert first != second
    assert len(first) == 32
    int(first, 16)


def test_dedup_key_hashes_ip() -> None:
    ip_hash = hashlib.md5(b"203.0.113.7").hexdigest()
    assert build_dedup_key("abc", "203.0.113.7") == f"traffic_nonce_abc_{ip_hash}"


def test_guard_logs_first_call_only() -> None:
    guard = DedupGuard(InMemoryDedupStore(), ttl_seconds=60)
    now = datetime.now(timezone.utc)

    assert guard.should_log("nonce-1", "203.0.113.7", now=now) is True
    assert guard.should_log("nonce-1", "203.0.113.7", now=now + timedelta(seconds=1)) is False
    assert guard.should_log("nonce-1", "203.0.113.7", now=now + timedelta(seconds=59)) is False


def test_guard_distinguishes_ip_and_nonce() -> None:
    guard = DedupGuard()
    now = datetime.now(timezone.utc)

    assert guard.should_log("nonce-1", "203.0.113.7", now=now) is True
    assert guard.should_log("nonce-1", "203.0.113.8", now=now) is True
    assert guard.should_log("nonce-2", "203.0.113.7", now=now) is True


def test_guard_allows_again_after_ttl() -> None:
    guard = DedupGuard(ttl_seconds=60)
    now = datetime.now(timezone.utc)

    assert guard.should_log("nonce-1", "203.0.113.7", now=now) is True
    assert guard.should_log("nonce-1", "203.0.113.7", now=now + timedelta(seconds=61)) is True


def test_guard_refuses_empty_nonce() -> None:
    assert DedupGuard().should_log("", "203.0.113.7") is False


def test_memory_store_prunes_expired_keys() -> None:
    store = InMemoryDedupStore()
    now = datetime.now(timezone.utc)

    store.add_if_absent("a", 1, now=now)
    store.add_if_absent("b", 1, now=now)
    store.add_if_absent("c", 60, now=now + timedelta(seconds=2))

    assert len(store) == 1


def test_memory_store_is_atomic_under_contention() -> None:
    guard = DedupGuard()
    results: list[bool] = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(guard.should_log("shared", "203.0.113.7"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1


def test_redis_store_uses_set_nx_ex() -> None:
    client = Mock()
    client.set.side_effect = [True, None]
    store = RedisDedupStore(client)

    assert store.add_if_absent("key", 60) is True
    assert store.add_if_absent("key", 60) is False
    client.set.assert_called_with("key", 1, nx=True, ex=60)


def test_build_store_defaults_to_memory() -> None:
    assert isinstance(build_dedup_store("memory"), InMemoryDedupStore)


def test_build_store_connects_to_redis() -> None:
    client = Mock()
    with patch("traffic_monitor.core.dedup.redis.from_url", return_value=client) as from_url:
        store = build_dedup_store("redis", "redis://cache:6379/1")

    from_url.assert_called_once_with("redis://cache:6379/1")
    client.ping.assert_called_once()
    assert isinstance(store, RedisDedupStore)


def test_build_store_falls_back_when_redis_is_down() -> None:
    client = Mock()
    client.ping.side_effect = redis.ConnectionError("refused")
    with patch("traffic_monitor.core.dedup.redis.from_url", return_value=client):
        store = build_dedup_store("redis", "redis://cache:6379/1")

    assert isinstance(store, InMemoryDedupStore)
