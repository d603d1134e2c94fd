from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Mapping

from codeguard.domain.errors import InvalidConfig

if TYPE_CHECKING:
    from codeguard.settings import Settings


class CheckResult(str, Enum):
    VALID = "valid"
    UNUSED_CODE_TOO_MANY = "unused_code_too_many"
    REQUEST_TOO_FREQUENT = "request_too_frequent"
    VERIFY_FAIL_TOO_FREQUENT = "verify_fail_too_frequent"

    @property
    def is_valid(self) -> bool:
        return self is CheckResult.VALID


@dataclass(frozen=True)
class ConsumeResult:
    found: bool
    success: bool


@dataclass(frozen=True)
class RegisteredPeriod:
    """
    How long the active code has been waiting to be consumed.
    When expired is True there is no active code and seconds is meaningless.
    """

    expired: bool
    seconds: int


def _require_int(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfig(f"{name} must be a whole number, got {value!r}")
    return value


def _non_negative(name: str, value: int) -> int:
    value = _require_int(name, value)
    if value < 0:
        raise InvalidConfig(f"{name} must be >= 0, got {value}")
    return value


def _positive(name: str, value: int) -> int:
    value = _require_int(name, value)
    if value <= 0:
        raise InvalidConfig(f"{name} must be > 0, got {value}")
    return value


class Policy:
    """
    Abuse-prevention policy shared by reference between the service and the
    caller. Durations are whole seconds; a zero threshold/ceiling disables
    the matching check.

    Temporary bans map a failure-count threshold to a ban duration: once the
    day's failure count reaches the threshold, verification stays blocked for
    that many seconds after the most recent failure.
    """

    def __init__(
        self,
        validity_duration: int,
        request_interval_threshold: int = 0,
        unused_code_ceiling: int = 0,
        failure_ceiling: int = 0,
        temporary_bans: Mapping[int, int] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._validity_duration = _positive("validity_duration", validity_duration)
        self._request_interval_threshold = _non_negative(
            "request_interval_threshold", request_interval_threshold
        )
        self._unused_code_ceiling = _non_negative(
            "unused_code_ceiling", unused_code_ceiling
        )
        self._failure_ceiling = _non_negative("failure_ceiling", failure_ceiling)
        self._temporary_bans: dict[int, int] = {}
        for threshold, duration in (temporary_bans or {}).items():
            self.add_temporary_ban(threshold, duration)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Policy":
        return cls(
            validity_duration=settings.code_validity_seconds,
            request_interval_threshold=settings.request_interval_seconds,
            unused_code_ceiling=settings.unused_code_ceiling,
            failure_ceiling=settings.failure_ceiling,
            temporary_bans=settings.temporary_bans,
        )

    @property
    def validity_duration(self) -> int:
        with self._lock:
            return self._validity_duration

    @validity_duration.setter
    def validity_duration(self, value: int) -> None:
        value = _positive("validity_duration", value)
        with self._lock:
            self._validity_duration = value

    @property
    def request_interval_threshold(self) -> int:
        with self._lock:
            return self._request_interval_threshold

    @request_interval_threshold.setter
    def request_interval_threshold(self, value: int) -> None:
        value = _non_negative("request_interval_threshold", value)
        with self._lock:
            self._request_interval_threshold = value

    @property
    def unused_code_ceiling(self) -> int:
        with self._lock:
            return self._unused_code_ceiling

    @unused_code_ceiling.setter
    def unused_code_ceiling(self, value: int) -> None:
        value = _non_negative("unused_code_ceiling", value)
        with self._lock:
            self._unused_code_ceiling = value

    @property
    def failure_ceiling(self) -> int:
        with self._lock:
            return self._failure_ceiling

    @failure_ceiling.setter
    def failure_ceiling(self, value: int) -> None:
        value = _non_negative("failure_ceiling", value)
        with self._lock:
            self._failure_ceiling = value

    def temporary_bans(self) -> dict[int, int]:
        """Point-in-time copy of the threshold -> ban duration mapping."""
        with self._lock:
            return dict(self._temporary_bans)

    def add_temporary_ban(self, threshold: int, duration: int) -> None:
        """Add or replace the ban applied once `threshold` failures are reached."""
        threshold = _positive("temporary ban threshold", threshold)
        duration = _non_negative("temporary ban duration", duration)
        with self._lock:
            self._temporary_bans[threshold] = duration

    def remove_temporary_ban(self, threshold: int) -> None:
        with self._lock:
            self._temporary_bans.pop(threshold, None)

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"Policy(validity_duration={self._validity_duration}, "
                f"request_interval_threshold={self._request_interval_threshold}, "
                f"unused_code_ceiling={self._unused_code_ceiling}, "
                f"failure_ceiling={self._failure_ceiling}, "
                f"temporary_bans={self._temporary_bans!r})"
            )
