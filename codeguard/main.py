from __future__ import annotations

from typing import Optional

from codeguard.application.verification_service import VerificationCodeService
from codeguard.domain.entities import Policy
from codeguard.domain.ports.verification_store import VerificationStorePort
from codeguard.infrastructure.redis_cache.pool import close_redis, get_redis
from codeguard.infrastructure.redis_cache.verification_store import (
    RedisVerificationStore,
)
from codeguard.logging import setup_logging
from codeguard.settings import Settings, get_settings


async def create_service(
    settings: Optional[Settings] = None,
    store: Optional[VerificationStorePort] = None,
) -> VerificationCodeService:
    """
    Wire logging, policy and store from settings.
    Pass `store` to run against something other than the shared Redis client.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    if store is None:
        store = RedisVerificationStore(get_redis())

    return await VerificationCodeService.create(
        store,
        settings.namespace,
        Policy.from_settings(settings),
    )


async def shutdown() -> None:
    await close_redis()
