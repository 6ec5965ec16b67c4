from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

import pytest

from pro_billing.services import billing_cache


class _FakeRedis:
    def __init__(self, *, fail: bool = False) -> None:
        self.values: dict[str, str] = {}
        self.expirations: dict[str, int] = {}
        self.set_calls: list[dict[str, Any]] = []
        self.closed = False
        self._fail = fail

    def _check(self) -> None:
        if self._fail:
            raise ConnectionError("redis down")

    async def mget(self, *keys: str) -> list[str | None]:
        self._check()
        return [self.values.get(key) for key in keys]

    async def set(self, key: str, value: str, ex: int) -> None:
        self._check()
        self.set_calls.append({"key": key, "value": value, "ex": ex})
        self.values[key] = value

    async def incr(self, key: str) -> int:
        self._check()
        value = int(self.values.get(key, "0")) + 1
        self.values[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self.expirations[key] = seconds
        return True

    async def delete(self, key: str) -> int:
        self._check()
        return 1 if self.values.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        self.closed = True


def _patch_client(monkeypatch: pytest.MonkeyPatch, client: _FakeRedis) -> None:
    monkeypatch.setattr(billing_cache, "_create_client", lambda: client)


def test_cache_keys_are_namespaced() -> None:
    user_id = uuid4()
    assert billing_cache.billing_status_cache_key(user_id) == f"billing:status:{user_id}"
    assert (
        billing_cache.billing_status_generation_key(user_id) == f"billing:status-gen:{user_id}"
    )


@pytest.mark.asyncio
async def test_write_then_read_cached_status(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis()
    _patch_client(monkeypatch, client)
    user_id = uuid4()

    miss = await billing_cache.read_cached_billing_status(user_id)
    await billing_cache.write_cached_billing_status(
        user_id,
        {"is_pro": True},
        generation=miss.generation,
        ttl_seconds=120,
    )
    cached = await billing_cache.read_cached_billing_status(user_id)

    assert miss == billing_cache.CachedBillingStatus(payload=None, generation=0)
    assert cached.payload == {"is_pro": True}
    assert client.set_calls[0]["ex"] == 120
    assert client.closed is True


@pytest.mark.asyncio
async def test_write_skips_non_positive_ttl(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis()
    _patch_client(monkeypatch, client)

    await billing_cache.write_cached_billing_status(
        uuid4(),
        {"is_pro": True},
        generation=0,
        ttl_seconds=0,
    )

    assert client.set_calls == []


@pytest.mark.asyncio
async def test_invalidate_removes_cached_status(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis()
    _patch_client(monkeypatch, client)
    user_id = uuid4()
    await billing_cache.write_cached_billing_status(
        user_id,
        {"is_pro": True},
        generation=0,
        ttl_seconds=60,
    )

    await billing_cache.invalidate_billing_status(user_id)
    cached = await billing_cache.read_cached_billing_status(user_id)

    assert cached == billing_cache.CachedBillingStatus(payload=None, generation=1)
    generation_key = billing_cache.billing_status_generation_key(user_id)
    assert client.expirations[generation_key] == (
        billing_cache.BILLING_STATUS_GENERATION_TTL_SECONDS
    )


@pytest.mark.asyncio
async def test_write_from_read_that_raced_invalidation_is_ignored(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    client = _FakeRedis()
    _patch_client(monkeypatch, client)
    user_id = uuid4()

    before_commit = await billing_cache.read_cached_billing_status(user_id)
    await billing_cache.invalidate_billing_status(user_id)
    await billing_cache.write_cached_billing_status(
        user_id,
        {"is_pro": False},
        generation=before_commit.generation,
        ttl_seconds=300,
    )

    cached = await billing_cache.read_cached_billing_status(user_id)

    assert cached.payload is None
    assert cached.generation == 1


@pytest.mark.asyncio
async def test_invalid_payload_is_a_miss(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis()
    _patch_client(monkeypatch, client)
    user_id = uuid4()
    key = billing_cache.billing_status_cache_key(user_id)

    client.values[key] = "not-json"
    assert (await billing_cache.read_cached_billing_status(user_id)).payload is None

    client.values[key] = json.dumps({"is_pro": True})
    assert (await billing_cache.read_cached_billing_status(user_id)).payload is None


@pytest.mark.asyncio
async def test_redis_failures_are_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis(fail=True)
    _patch_client(monkeypatch, client)
    user_id = uuid4()

    await billing_cache.invalidate_billing_status(user_id)
    await billing_cache.write_cached_billing_status(
        user_id,
        {"is_pro": False},
        generation=0,
        ttl_seconds=60,
    )

    cached = await billing_cache.read_cached_billing_status(user_id)
    assert cached == billing_cache.CachedBillingStatus(payload=None, generation=None)
