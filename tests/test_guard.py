"""Tests for the attempt guard lockout rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from otp_authenticator import (
    AttemptGuard,
    AuthenticatorRecord,
    AuthenticatorState,
    AuthenticatorType,
    LockoutPolicy,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
WINDOW = timedelta(minutes=15)


@pytest.fixture
def guard() -> AttemptGuard:
    return AttemptGuard(LockoutPolicy(max_failures=3, lockout_duration=WINDOW))


def _record(**overrides) -> AuthenticatorRecord:
    data = {
        "id": "a1",
        "user_id": "user-1",
        "type": AuthenticatorType.EMAIL,
        "destination": "alice@example.com",
        "created_at": NOW,
    }
    data.update(overrides)
    return AuthenticatorRecord(**data)


def _locked(until: datetime, **overrides) -> AuthenticatorRecord:
    return _record(
        state=AuthenticatorState.LOCKED,
        locked_until=until,
        failed_attempts=3,
        **overrides,
    )


class TestLockoutPolicy:
    def test_defaults(self) -> None:
        policy = LockoutPolicy()
        assert policy.max_failures == 5
        assert policy.lockout_duration == timedelta(minutes=15)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_failures": 0}, {"lockout_duration": timedelta(0)}],
    )
    def test_rejects_invalid(self, kwargs) -> None:
        with pytest.raises(ValueError):
            LockoutPolicy(**kwargs)


class TestEvaluate:
    def test_unlocked_is_allowed(self, guard) -> None:
        decision = guard.evaluate(_record(), NOW)
        assert decision.allowed
        assert not decision.lazy_unlock

    def test_inside_window_is_refused(self, guard) -> None:
        until = NOW + WINDOW
        decision = guard.evaluate(_locked(until), NOW)
        assert not decision.allowed
        assert decision.locked_until == until

    def test_boundary_is_unlocked(self, guard) -> None:
        decision = guard.evaluate(_locked(NOW), NOW)
        assert decision.allowed
        assert decision.lazy_unlock


class TestEffectiveState:
    def test_stored_state_while_locked(self, guard) -> None:
        assert guard.effective_state(_locked(NOW + WINDOW), NOW) is (
            AuthenticatorState.LOCKED
        )

    def test_unconfirmed_returns_to_unconfirmed(self, guard) -> None:
        assert guard.effective_state(_locked(NOW), NOW) is (
            AuthenticatorState.UNCONFIRMED
        )

    def test_confirmed_returns_to_active(self, guard) -> None:
        record = _locked(NOW - timedelta(seconds=1), confirmed_at=NOW - WINDOW)
        assert guard.effective_state(record, NOW) is AuthenticatorState.ACTIVE

    def test_current_view_resets_counters(self, guard) -> None:
        record = _locked(NOW, version=4)
        view = guard.current_view(record, NOW)

        assert view.failed_attempts == 0
        assert view.locked_until is None
        assert view.version == 4

    def test_current_view_unchanged_when_not_elapsed(self, guard) -> None:
        record = _locked(NOW + WINDOW)
        assert guard.current_view(record, NOW) is record


class TestOnFailure:
    def test_counts_up(self, guard) -> None:
        outcome = guard.on_failure(_record(failed_attempts=1), NOW)
        assert outcome.failed_attempts == 2
        assert outcome.state is AuthenticatorState.UNCONFIRMED
        assert not outcome.locks

    def test_threshold_locks(self, guard) -> None:
        outcome = guard.on_failure(_record(failed_attempts=2), NOW)
        assert outcome.locks
        assert outcome.failed_attempts == 3
        assert outcome.locked_until == NOW + WINDOW

    def test_active_record_keeps_state(self, guard) -> None:
        record = _record(state=AuthenticatorState.ACTIVE, confirmed_at=NOW)
        assert guard.on_failure(record, NOW).state is AuthenticatorState.ACTIVE

    def test_still_locked_is_unchanged(self, guard) -> None:
        until = NOW + WINDOW
        outcome = guard.on_failure(_locked(until), NOW)
        assert outcome.failed_attempts == 3
        assert outcome.locked_until == until

    def test_elapsed_lock_starts_over(self, guard) -> None:
        outcome = guard.on_failure(_locked(NOW - timedelta(seconds=1)), NOW)
        assert outcome.failed_attempts == 1
        assert outcome.state is AuthenticatorState.UNCONFIRMED

    def test_single_failure_policy(self) -> None:
        guard = AttemptGuard(LockoutPolicy(max_failures=1))
        assert guard.on_failure(_record(), NOW).locks


class TestOnSuccess:
    def test_resets(self, guard) -> None:
        outcome = guard.on_success(_record(failed_attempts=2))
        assert outcome.failed_attempts == 0
        assert outcome.state is AuthenticatorState.ACTIVE
        assert outcome.locked_until is None
