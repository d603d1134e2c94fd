import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from redis.asyncio import Redis

from codeguard.application.verification_service import VerificationCodeService
from codeguard.domain.entities import CheckResult, ConsumeResult, Policy
from codeguard.domain.errors import StoreUnavailable
from codeguard.infrastructure.redis_cache.verification_store import (
    RedisVerificationStore,
)


def unique_key(prefix: str) -> str:
    return f"codeguard:test:{prefix}:{uuid4()}"


@pytest.mark.asyncio
async def test_scalar_set_get_ttl_delete(redis_client):
    store = RedisVerificationStore(redis_client)
    key = unique_key("scalar")

    assert await store.get(key) is None
    assert await store.ttl_remaining(key) == 0

    await store.set_with_ttl(key, "1234", 60)
    assert await store.get(key) == "1234"
    assert await store.ttl_remaining(key) in (59, 60)

    await redis_client.delete(key)
    assert await store.get(key) is None


@pytest.mark.asyncio
async def test_ttl_of_key_without_expiry_is_zero(redis_client):
    store = RedisVerificationStore(redis_client)
    key = unique_key("noexpiry")
    await redis_client.set(key, "x")
    try:
        assert await store.ttl_remaining(key) == 0
    finally:
        await redis_client.delete(key)


@pytest.mark.asyncio
async def test_delete_if_equals_is_single_use_under_race(redis_client):
    store = RedisVerificationStore(redis_client)
    key = unique_key("cad")
    await store.set_with_ttl(key, "4242", 60)

    assert await store.delete_if_equals(key, "0000") is False
    assert await store.get(key) == "4242"

    res1, res2 = await asyncio.gather(
        store.delete_if_equals(key, "4242"),
        store.delete_if_equals(key, "4242"),
    )
    assert sorted([res1, res2]) == [False, True]
    assert await redis_client.exists(key) == 0


@pytest.mark.asyncio
async def test_counter_and_absolute_expiry(redis_client):
    store = RedisVerificationStore(redis_client)
    key = unique_key("count")

    assert await store.increment(key) == 1
    assert await store.increment(key) == 2
    await store.expire_at(key, datetime.now() + timedelta(seconds=30))
    assert 0 < await store.ttl_remaining(key) <= 30

    await redis_client.delete(key)


@pytest.mark.asyncio
async def test_set_operations(redis_client):
    store = RedisVerificationStore(redis_client)
    key = unique_key("set")

    assert await store.set_cardinality(key) == 0
    await store.set_add(key, "a")
    await store.set_add(key, "b")
    await store.set_add(key, "a")
    assert await store.set_cardinality(key) == 2

    await store.set_remove(key, "a")
    await store.set_remove(key, "missing")
    assert await store.set_cardinality(key) == 1

    await redis_client.delete(key)


@pytest.mark.asyncio
async def test_unreachable_redis_raises_store_unavailable():
    r = Redis.from_url(
        "redis://127.0.0.1:1/0", decode_responses=True, socket_connect_timeout=0.2
    )
    store = RedisVerificationStore(r)
    try:
        with pytest.raises(StoreUnavailable):
            await store.ping()
        with pytest.raises(StoreUnavailable):
            await store.get("anything")
        with pytest.raises(StoreUnavailable):
            await VerificationCodeService.create(
                store, "SMS", Policy(validity_duration=60)
            )
    finally:
        await r.aclose()


@pytest.mark.asyncio
async def test_full_lifecycle_against_redis(redis_client):
    namespace = f"codeguard:test:{uuid4()}:"
    policy = Policy(
        validity_duration=300,
        request_interval_threshold=60,
        unused_code_ceiling=5,
        failure_ceiling=10,
        temporary_bans={3: 40, 5: 120},
    )
    service = await VerificationCodeService.create(
        RedisVerificationStore(redis_client), namespace, policy
    )
    phone = "TestPhoneNumber001"

    try:
        assert await service.pre_send_check(phone) is CheckResult.VALID
        await service.issue(phone, "TestTest")
        assert await service.pre_send_check(phone) is CheckResult.REQUEST_TOO_FREQUENT
        assert await service.pre_verify_check(phone) is CheckResult.VALID

        for i in range(3):
            assert await service.consume(phone, f"fake{i}") == ConsumeResult(
                found=True, success=False
            )
        assert await service.failure_count_today(phone) == 3
        assert await service.last_failure_time(phone) is not None
        assert (
            await service.pre_verify_check(phone)
            is CheckResult.VERIFY_FAIL_TOO_FREQUENT
        )

        assert await service.consume(phone, "TestTest") == ConsumeResult(
            found=True, success=True
        )
        assert await service.unused_code_count(phone) == 0
        assert await service.consume(phone, "TestTest") == ConsumeResult(
            found=False, success=False
        )
    finally:
        keys = await redis_client.keys(f"{namespace}*")
        if keys:
            await redis_client.delete(*keys)
