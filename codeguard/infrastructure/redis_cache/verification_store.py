from __future__ import annotations

from datetime import datetime
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from codeguard.domain.errors import StoreUnavailable
from codeguard.domain.ports.verification_store import VerificationStorePort


_LUA_DELETE_IF_EQUALS = """
-- KEYS[1]: active code key
-- ARGV[1]: expected code
local cur = redis.call('GET', KEYS[1])
if not cur then
  return 0
end
if cur ~= ARGV[1] then
  return 0
end
redis.call('DEL', KEYS[1])
return 1
"""


class RedisVerificationStore(VerificationStorePort):
    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            raise StoreUnavailable(f"redis ping failed: {exc}") from exc

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        try:
            res = await self._redis.eval(_LUA_DELETE_IF_EQUALS, 1, key, expected)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc
        return int(res) == 1

    async def ttl_remaining(self, key: str) -> int:
        try:
            ttl = await self._redis.ttl(key)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc
        # -2: key missing, -1: key has no expiry
        return ttl if ttl > 0 else 0

    async def increment(self, key: str) -> int:
        try:
            return int(await self._redis.incr(key))
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def expire_at(self, key: str, when: datetime) -> None:
        try:
            await self._redis.expireat(key, when)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def set_add(self, key: str, member: str) -> None:
        try:
            await self._redis.sadd(key, member)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def set_remove(self, key: str, member: str) -> None:
        try:
            await self._redis.srem(key, member)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def set_cardinality(self, key: str) -> int:
        try:
            return int(await self._redis.scard(key))
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc
