from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from codeguard.application.abuse_checks import PRE_SEND, PRE_VERIFY, AbuseCheckEngine
from codeguard.domain.entities import (
    CheckResult,
    ConsumeResult,
    Policy,
    RegisteredPeriod,
)
from codeguard.domain.errors import InvalidConfig, StoreUnavailable
from codeguard.domain.ports.verification_store import VerificationStorePort
from codeguard.domain.services import (
    VerificationKeys,
    codes_match,
    next_local_midnight,
    seconds_until,
    subject_digest,
)

logger = logging.getLogger("codeguard.application.verification_service")


class VerificationCodeService:
    """
    Issues and consumes one-time verification codes for a namespace.

    Usage:
        service = await VerificationCodeService.create(store, "SMS", policy)
        if (await service.pre_send_check(phone)).is_valid:
            await service.issue(phone, code)
            ...
        if (await service.pre_verify_check(phone)).is_valid:
            result = await service.consume(phone, candidate)

    Running the pre-checks before issue/consume is the caller's job; the
    service does not enforce it.
    """

    def __init__(
        self,
        store: VerificationStorePort,
        namespace: str,
        policy: Policy,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not namespace:
            raise InvalidConfig("namespace must be a non-empty string")
        if not isinstance(policy, Policy):
            raise InvalidConfig("policy must be a Policy")
        self._store = store
        self._clock = clock or datetime.now
        self.namespace = namespace
        self.policy = policy
        self.keys = VerificationKeys(namespace)
        self.checks = AbuseCheckEngine(store, self.keys, policy, clock=self._clock)

    @classmethod
    async def create(
        cls,
        store: VerificationStorePort,
        namespace: str,
        policy: Policy,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "VerificationCodeService":
        """Build the service, failing fast if the store does not answer."""
        service = cls(store, namespace, policy, clock=clock)
        if not await service.verify_connection():
            raise StoreUnavailable("verification store did not answer ping")
        logger.info("verification service ready", extra={"namespace": namespace})
        return service

    async def verify_connection(self) -> bool:
        """
        Worth calling before paying for a delivery (SMS/email) so a dead store
        is detected before the code goes out.
        """
        return await self._store.ping()

    # ----- lifecycle -----

    async def issue(self, subject: str, code: str) -> None:
        """
        Make `code` the subject's active code and record it as unconsumed.

        Not atomic: if the second write fails the code stays valid but is not
        counted by the unused-code check.
        """
        now = self._clock()
        await self._store.set_with_ttl(
            self.keys.active_code(subject), code, self.policy.validity_duration
        )
        unused_key = self.keys.unused_codes(subject, now)
        await self._store.set_add(unused_key, code)
        await self._store.expire_at(unused_key, next_local_midnight(now))
        logger.info(
            "verification code issued",
            extra={
                "namespace": self.namespace,
                "subject_digest": subject_digest(subject),
            },
        )

    async def consume(self, subject: str, candidate: str) -> ConsumeResult:
        now = self._clock()
        active_key = self.keys.active_code(subject)
        stored = await self._store.get(active_key)
        if stored is None:
            return ConsumeResult(found=False, success=False)

        if codes_match(stored, candidate):
            # compare-and-delete so two concurrent consumers cannot both win
            if not await self._store.delete_if_equals(active_key, stored):
                return ConsumeResult(found=False, success=False)
            await self._store.set_remove(self.keys.unused_codes(subject, now), stored)
            logger.info(
                "verification code consumed",
                extra={
                    "namespace": self.namespace,
                    "subject_digest": subject_digest(subject),
                },
            )
            return ConsumeResult(found=True, success=True)

        await self._record_failure(subject, now)
        return ConsumeResult(found=True, success=False)

    async def _record_failure(self, subject: str, now: datetime) -> None:
        midnight = next_local_midnight(now)
        count_key = self.keys.failure_count(subject, now)
        count = await self._store.increment(count_key)
        await self._store.expire_at(count_key, midnight)
        await self._store.set_with_ttl(
            self.keys.last_failure_time(subject, now),
            str(int(now.timestamp())),
            seconds_until(midnight, now),
        )
        logger.info(
            "verification code mismatch",
            extra={
                "namespace": self.namespace,
                "subject_digest": subject_digest(subject),
                "failures_today": count,
            },
        )

    # ----- abuse checks -----

    async def pre_send_check(self, subject: str) -> CheckResult:
        return await self.checks.check(subject, PRE_SEND)

    async def pre_verify_check(self, subject: str) -> CheckResult:
        return await self.checks.check(subject, PRE_VERIFY)

    async def check_request_too_frequent(self, subject: str) -> bool:
        return await self.checks.request_too_frequent(subject)

    async def check_unused_code_too_many(self, subject: str) -> bool:
        return await self.checks.unused_code_too_many(subject)

    async def check_verify_fail_too_frequent(self, subject: str) -> bool:
        return await self.checks.verify_fail_too_frequent(subject)

    # ----- queries -----

    async def code_ttl(self, subject: str) -> int:
        """Seconds left before the active code expires (0 if none)."""
        return await self._store.ttl_remaining(self.keys.active_code(subject))

    async def registered_period(self, subject: str) -> RegisteredPeriod:
        ttl = await self.code_ttl(subject)
        return RegisteredPeriod(
            expired=ttl == 0, seconds=self.policy.validity_duration - ttl
        )

    async def failure_count_today(self, subject: str) -> int:
        raw = await self._store.get(self.keys.failure_count(subject, self._clock()))
        return int(raw) if raw else 0

    async def last_failure_time(self, subject: str) -> Optional[datetime]:
        raw = await self._store.get(
            self.keys.last_failure_time(subject, self._clock())
        )
        if raw is None:
            return None
        return datetime.fromtimestamp(int(raw))

    async def unused_code_count(self, subject: str) -> int:
        return await self._store.set_cardinality(
            self.keys.unused_codes(subject, self._clock())
        )
