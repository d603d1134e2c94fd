# codeguard/domain/services.py
from __future__ import annotations

import hashlib
import hmac
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta

DAY_STAMP_FORMAT = "%Y%m%d"


def codes_match(stored: str, candidate: str) -> bool:
    """
    Exact, case-sensitive comparison in constant time.
    Falls back to bytes for non-ASCII input.
    """
    try:
        return hmac.compare_digest(stored, candidate)
    except TypeError:
        return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def subject_digest(subject: str) -> str:
    """Short stable SHA-256 prefix so logs can correlate a subject without its PII."""
    return hashlib.sha256(subject.encode("utf-8")).hexdigest()[:12]


def day_stamp(now: datetime) -> str:
    """Local calendar date as YYYYMMDD."""
    return now.strftime(DAY_STAMP_FORMAT)


def next_local_midnight(now: datetime) -> datetime:
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


def seconds_until(when: datetime, now: datetime) -> int:
    """Whole seconds from now until `when`, rounded up, never below 1."""
    return max(1, math.ceil((when - now).total_seconds()))


@dataclass(frozen=True)
class VerificationKeys:
    """
    Single place where store keys are derived.

    Day-scoped keys embed the local date of `now`, so yesterday's counters
    and sets are simply never read again once the date changes.
    """

    namespace: str

    def active_code(self, subject: str) -> str:
        return f"{self.namespace}VerificationCode{subject}"

    def unused_codes(self, subject: str, now: datetime) -> str:
        return f"{self.namespace}VerificationCodeSet{subject}{day_stamp(now)}"

    def failure_count(self, subject: str, now: datetime) -> str:
        return f"{self.namespace}VerificationCodeErrorCount{subject}{day_stamp(now)}"

    def last_failure_time(self, subject: str, now: datetime) -> str:
        return f"{self.namespace}VerificationCodeLastErrorTime{subject}{day_stamp(now)}"
