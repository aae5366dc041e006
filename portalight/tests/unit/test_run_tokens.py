from __future__ import annotations

import asyncio

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from portalight.core.errors import SyncInProgressError
from portalight.services.catalog.locks import LocalRunTokens, RedisRunTokens


@pytest.mark.asyncio
async def test_local_tokens_serialize_one_path() -> None:
    tokens = LocalRunTokens()

    async with tokens.hold("projects/a.yaml", wait_s=1.0):
        assert tokens.is_held("projects/a.yaml")
        with pytest.raises(SyncInProgressError):
            async with tokens.hold("projects/a.yaml", wait_s=0.05):
                pass
        # Other paths are independent.
        async with tokens.hold("projects/b.yaml", wait_s=0.05):
            pass

    assert not tokens.is_held("projects/a.yaml")


@pytest.mark.asyncio
async def test_local_tokens_wait_for_release() -> None:
    tokens = LocalRunTokens()
    order: list[str] = []

    async def first() -> None:
        async with tokens.hold("projects/a.yaml", wait_s=1.0):
            order.append("first")
            await asyncio.sleep(0.05)

    async def second() -> None:
        await asyncio.sleep(0.01)
        async with tokens.hold("projects/a.yaml", wait_s=1.0):
            order.append("second")

    await asyncio.gather(first(), second())

    assert order == ["first", "second"]


@pytest.mark.asyncio
async def test_redis_tokens_exclude_concurrent_holders() -> None:
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    tokens = RedisRunTokens(redis, prefix="test:lock", ttl_s=30, poll_interval_s=0.01)

    async with tokens.hold("projects/a.yaml", wait_s=0.1):
        assert await redis.exists("test:lock:projects/a.yaml") == 1
        with pytest.raises(SyncInProgressError):
            async with tokens.hold("projects/a.yaml", wait_s=0.05):
                pass

    assert await redis.exists("test:lock:projects/a.yaml") == 0


@pytest.mark.asyncio
async def test_redis_release_keeps_foreign_token() -> None:
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    tokens = RedisRunTokens(redis, prefix="test:lock", ttl_s=30, poll_interval_s=0.01)

    async with tokens.hold("projects/a.yaml", wait_s=0.1):
        # Simulate expiry followed by another instance taking the token.
        await redis.set("test:lock:projects/a.yaml", "someone-else")

    assert await redis.get("test:lock:projects/a.yaml") == "someone-else"


class _BrokenRedis:
    async def set(self, *args, **kwargs):
        raise RedisConnectionError("redis down")

    async def get(self, *args, **kwargs):
        raise RedisConnectionError("redis down")

    async def delete(self, *args, **kwargs):
        raise RedisConnectionError("redis down")


@pytest.mark.asyncio
async def test_redis_tokens_fall_back_to_local_lock() -> None:
    fallback = LocalRunTokens()
    tokens = RedisRunTokens(_BrokenRedis(), prefix="test:lock", ttl_s=30, fallback=fallback)

    async with tokens.hold("projects/a.yaml", wait_s=0.1):
        assert fallback.is_held("projects/a.yaml")

    assert not fallback.is_held("projects/a.yaml")


@pytest.mark.asyncio
async def test_local_tokens_forget_idle_paths() -> None:
    tokens = LocalRunTokens()

    async def sync(path: str) -> None:
        async with tokens.hold(path, wait_s=1.0):
            await asyncio.sleep(0.01)

    await asyncio.gather(*(sync(f"projects/{index}.yaml") for index in range(5)), sync("projects/0.yaml"))
    with pytest.raises(SyncInProgressError):
        async with tokens.hold("projects/a.yaml", wait_s=1.0):
            async with tokens.hold("projects/a.yaml", wait_s=0.01):
                pass

    assert len(tokens) == 0
    assert not tokens.is_held("projects/0.yaml")
