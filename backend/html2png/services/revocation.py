"""Revocation stores for bearer tokens.

A token is revoked by recording the SHA-256 of the raw token together with
its natural expiry. Records past that expiry are garbage: the token would
fail its own ``exp`` check anyway.

Backends are interchangeable behind ``RevocationStore``:

- ``DatabaseRevocationStore``: durable rows in ``revoked_tokens`` (default)
- ``MemoryRevocationStore``: process-local dict, for single-process runs and tests
- ``RedisRevocationStore``: shared across workers, expiry handled by key TTL
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

import redis
import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from html2png.core.config import Settings
from html2png.models.revoked_token import RevokedToken

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RevocationStore(Protocol):
    def add(self, token_hash: str, expires_at: datetime) -> None: ...

    def contains(self, token_hash: str) -> bool: ...

    def purge_expired(self) -> int: ...


class MemoryRevocationStore:
    """Process-local store. Expired entries are dropped on lookup and swept on write.

    The sweep runs at most once every ``sweep_interval`` seconds, so entries
    for tokens that are never presented again do not pile up.
    """

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._sweep_interval = timedelta(seconds=sweep_interval)
        self._last_sweep = _utcnow()

    def add(self, token_hash: str, expires_at: datetime) -> None:
        now = _utcnow()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._purge_locked(now)
            self._entries[token_hash] = expires_at

    def contains(self, token_hash: str) -> bool:
        now = _utcnow()
        with self._lock:
            expires_at = self._entries.get(token_hash)
            if expires_at is None:
                return False
            if expires_at <= now:
                del self._entries[token_hash]
                return False
        return True

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(_utcnow())

    def _purge_locked(self, now: datetime) -> int:
        expired = [h for h, exp in self._entries.items() if exp <= now]
        for token_hash in expired:
            del self._entries[token_hash]
        self._last_sweep = now
        return len(expired)


class DatabaseRevocationStore:
    """Uses short-lived sessions so it can be shared by every request."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add(self, token_hash: str, expires_at: datetime) -> None:
        db = self._session_factory()
        try:
            db.add(RevokedToken(token_hash=token_hash, expires_at=expires_at))
            db.commit()
        except IntegrityError:
            # Already revoked (e.g. double logout).
            db.rollback()
        finally:
            db.close()

    def contains(self, token_hash: str) -> bool:
        db = self._session_factory()
        try:
            row = db.execute(
                select(RevokedToken.expires_at).where(RevokedToken.token_hash == token_hash)
            ).first()
        finally:
            db.close()
        return row is not None and row.expires_at > _utcnow()

    def purge_expired(self) -> int:
        db = self._session_factory()
        try:
            result = db.execute(delete(RevokedToken).where(RevokedToken.expires_at <= _utcnow()))
            db.commit()
            return result.rowcount or 0
        finally:
            db.close()


class RedisRevocationStore:
    def __init__(self, client: redis.Redis, prefix: str = "revoked:") -> None:
        self._client = client
        self._prefix = prefix

    def add(self, token_hash: str, expires_at: datetime) -> None:
        ttl = int((expires_at - _utcnow()).total_seconds())
        if ttl <= 0:
            return
        self._client.set(f"{self._prefix}{token_hash}", "1", ex=ttl)

    def contains(self, token_hash: str) -> bool:
        return bool(self._client.exists(f"{self._prefix}{token_hash}"))

    def purge_expired(self) -> int:
        # Keys carry their own TTL.
        return 0


def revocation_store_from_settings(settings: Settings, session_factory: Callable[[], Session]) -> RevocationStore:
    backend = settings.REVOCATION_BACKEND
    if backend == "memory":
        store: RevocationStore = MemoryRevocationStore()
    elif backend == "redis":
        store = RedisRevocationStore(redis.Redis.from_url(settings.REDIS_URL))
    else:
        store = DatabaseRevocationStore(session_factory)
    logger.info("revocation.store.configured", backend=backend)
    return store
