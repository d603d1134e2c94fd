from datetime import datetime

import pytest

from codeguard.application.verification_service import VerificationCodeService
from codeguard.domain.entities import Policy
from tests.fakes import FakeClock, FakeVerificationStore


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 5, 14, 10, 0, 0))


@pytest.fixture()
def store(clock):
    return FakeVerificationStore(clock)


@pytest.fixture()
def policy():
    return Policy(
        validity_duration=300,
        request_interval_threshold=60,
        unused_code_ceiling=5,
        failure_ceiling=10,
        temporary_bans={3: 40, 5: 120},
    )


@pytest.fixture()
def service(store, policy, clock):
    return VerificationCodeService(store, "SMS", policy, clock=clock)
