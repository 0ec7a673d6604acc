"""Test configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from otp_authenticator import (
    AuthenticatorConfig,
    AuthenticatorService,
    InMemoryAuthenticatorStore,
    InMemoryLockStrategy,
    InMemoryNotificationSender,
    LockoutPolicy,
)
from otp_authenticator import totp


class FrozenClock:
    """Controllable clock for the service."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def wrong_code(secret: bytes, at: datetime, window: int = 1) -> str:
    """A six-digit code guaranteed not to verify around ``at``."""
    for value in range(10**6):
        candidate = f"{value:06d}"
        if not totp.verify_code(secret, candidate, at, window_steps=window):
            return candidate
    raise AssertionError("unreachable")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryAuthenticatorStore:
    return InMemoryAuthenticatorStore()


@pytest.fixture
def sender() -> InMemoryNotificationSender:
    return InMemoryNotificationSender()


@pytest.fixture
def lock_strategy() -> InMemoryLockStrategy:
    return InMemoryLockStrategy()


@pytest.fixture
def config() -> AuthenticatorConfig:
    return AuthenticatorConfig(
        lockout=LockoutPolicy(max_failures=3, lockout_duration=timedelta(minutes=15))
    )


@pytest.fixture
def service(
    store: InMemoryAuthenticatorStore,
    sender: InMemoryNotificationSender,
    lock_strategy: InMemoryLockStrategy,
    config: AuthenticatorConfig,
    clock: FrozenClock,
) -> AuthenticatorService[str]:
    return AuthenticatorService(
        store,
        sender=sender,
        config=config,
        lock_strategy=lock_strategy,
        clock=clock,
    )


@pytest.fixture
def wrong_code_for():
    """Build a code that does not verify for a secret around a moment."""
    return wrong_code
