from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from codeguard.domain.entities import CheckResult, Policy
from codeguard.domain.ports.verification_store import VerificationStorePort
from codeguard.domain.services import VerificationKeys, subject_digest

logger = logging.getLogger("codeguard.application.abuse_checks")

Predicate = Callable[[str], Awaitable[bool]]

PRE_SEND: tuple[CheckResult, ...] = (
    CheckResult.REQUEST_TOO_FREQUENT,
    CheckResult.VERIFY_FAIL_TOO_FREQUENT,
    CheckResult.UNUSED_CODE_TOO_MANY,
)
# a pending code inside its own request window must still be verifiable
PRE_VERIFY: tuple[CheckResult, ...] = (
    CheckResult.VERIFY_FAIL_TOO_FREQUENT,
    CheckResult.UNUSED_CODE_TOO_MANY,
)


class AbuseCheckEngine:
    """
    Read-only abuse predicates over a subject's verification state.

    Thresholds are read from the shared Policy at evaluation time, so runtime
    policy changes apply to the next check without rebuilding the engine.
    """

    def __init__(
        self,
        store: VerificationStorePort,
        keys: VerificationKeys,
        policy: Policy,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._keys = keys
        self._policy = policy
        self._clock = clock
        self._predicates: dict[CheckResult, Predicate] = {
            CheckResult.REQUEST_TOO_FREQUENT: self.request_too_frequent,
            CheckResult.UNUSED_CODE_TOO_MANY: self.unused_code_too_many,
            CheckResult.VERIFY_FAIL_TOO_FREQUENT: self.verify_fail_too_frequent,
        }

    async def request_too_frequent(self, subject: str) -> bool:
        """
        True while the previous code is still alive and was issued no more
        than request_interval_threshold seconds ago.
        """
        threshold = self._policy.request_interval_threshold
        if threshold <= 0:
            return False
        ttl = await self._store.ttl_remaining(self._keys.active_code(subject))
        return ttl > 0 and (self._policy.validity_duration - ttl) <= threshold

    async def unused_code_too_many(self, subject: str) -> bool:
        """
        Too many codes issued today without being consumed.

        Exactly at the ceiling only counts as a violation while a code is
        still pending; above it always does.
        """
        ceiling = self._policy.unused_code_ceiling
        if ceiling <= 0:
            return False
        now = self._clock()
        cnt = await self._store.set_cardinality(self._keys.unused_codes(subject, now))
        if cnt < ceiling:
            return False
        if cnt > ceiling:
            return True
        return await self._store.get(self._keys.active_code(subject)) is not None

    async def verify_fail_too_frequent(self, subject: str) -> bool:
        """
        Too many failed verifications today.

        Reaching failure_ceiling blocks for the rest of the day. Below it, any
        temporary ban whose threshold is reached blocks while the last failure
        is at most that ban's duration old.
        """
        now = self._clock()
        raw_count = await self._store.get(self._keys.failure_count(subject, now))
        cnt = int(raw_count) if raw_count else 0
        if cnt == 0:
            return False

        ceiling = self._policy.failure_ceiling
        if ceiling > 0 and cnt >= ceiling:
            return True

        bans = self._policy.temporary_bans()
        if not bans:
            return False

        raw_last = await self._store.get(self._keys.last_failure_time(subject, now))
        if raw_last is None:
            return False
        elapsed = int(now.timestamp()) - int(raw_last)
        return any(
            cnt >= threshold and elapsed <= duration
            for threshold, duration in bans.items()
        )

    async def check(self, subject: str, kinds: Iterable[CheckResult]) -> CheckResult:
        """
        Run the requested predicates concurrently.

        Returns the first violation to arrive, or VALID once every predicate
        came back clean. A store error from any predicate is raised as soon as
        it arrives, even if other predicates would have passed.
        """
        selected = list(dict.fromkeys(kinds))
        for kind in selected:
            if kind not in self._predicates:
                raise ValueError(f"not a check: {kind!r}")

        tasks = [
            asyncio.ensure_future(self._evaluate(kind, subject)) for kind in selected
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                kind, violated = await next_done
                if violated:
                    logger.warning(
                        "verification check violated",
                        extra={
                            "namespace": self._keys.namespace,
                            "subject_digest": subject_digest(subject),
                            "check": kind.value,
                        },
                    )
                    return kind
        finally:
            for task in tasks:
                task.cancel()
            # reap leftovers so late store errors are not reported as unretrieved
            await asyncio.gather(*tasks, return_exceptions=True)
        return CheckResult.VALID

    async def _evaluate(self, kind: CheckResult, subject: str) -> tuple[CheckResult, bool]:
        return kind, await self._predicates[kind](subject)
