from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from portalight.core.config import get_settings
from portalight.core.errors import SyncInProgressError


logger = logging.getLogger(__name__)


class RunTokens(Protocol):
    def hold(self, key: str, *, wait_s: float) -> AbstractAsyncContextManager[None]:
        ...


class LocalRunTokens:
    def __init__(self) -> None:
        # One lock per manifest path; serializes syncs within this process.
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per path; the lock is dropped when this reaches zero.
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, key: str, *, wait_s: float) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=max(wait_s, 0.001))
            except asyncio.TimeoutError as exc:
                raise SyncInProgressError(f"a sync is already running for {key}") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class RedisRunTokens:
    """Run token shared across instances via ``SET NX`` with a TTL.

    The TTL bounds how long a crashed holder can block a path. When Redis is
    unreachable the token degrades to the in-process lock.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        prefix: str,
        ttl_s: int,
        poll_interval_s: float = 0.2,
        fallback: LocalRunTokens | None = None,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl_s = max(1, int(ttl_s))
        self._poll_interval_s = poll_interval_s
        self._fallback = fallback or LocalRunTokens()

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def _acquire(self, redis_key: str, token: str, wait_s: float) -> bool:
        deadline = time.monotonic() + wait_s
        while True:
            if await self._redis.set(redis_key, token, nx=True, ex=self._ttl_s):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_s)

    async def _release(self, redis_key: str, token: str) -> None:
        try:
            current = await self._redis.get(redis_key)
            if isinstance(current, bytes):
                current = current.decode("utf-8")
            # Only the holder may release; an expired token may belong to someone else now.
            if current == token:
                await self._redis.delete(redis_key)
        except RedisError as exc:
            logger.warning("catalog_run_token_release_failed key=%s", redis_key, exc_info=exc)

    @asynccontextmanager
    async def hold(self, key: str, *, wait_s: float) -> AsyncIterator[None]:
        redis_key = self._key(key)
        token = uuid4().hex
        acquired: bool | None
        try:
            acquired = await self._acquire(redis_key, token, wait_s)
        except RedisError as exc:
            logger.warning("catalog_run_token_redis_unavailable key=%s", redis_key, exc_info=exc)
            acquired = None
        if acquired is None:
            async with self._fallback.hold(key, wait_s=wait_s):
                yield
            return
        if not acquired:
            raise SyncInProgressError(f"a sync is already running for {key}")
        try:
            yield
        finally:
            await self._release(redis_key, token)


_run_tokens: LocalRunTokens | RedisRunTokens | None = None


def get_run_tokens() -> LocalRunTokens | RedisRunTokens:
    # Share one token registry per process so every syncer instance serializes on it.
    global _run_tokens
    if _run_tokens is None:
        settings = get_settings()
        if settings.catalog_lock_backend.lower() == "redis":
            _run_tokens = RedisRunTokens(
                Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True),
                prefix=settings.catalog_lock_redis_prefix,
                ttl_s=settings.catalog_lock_ttl_s,
            )
        else:
            _run_tokens = LocalRunTokens()
    return _run_tokens


def reset_run_tokens() -> None:
    # Allow tests to drop loop-bound locks between event loops.
    global _run_tokens
    _run_tokens = None
