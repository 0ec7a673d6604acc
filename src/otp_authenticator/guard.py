"""Lockout policy for authenticator verification attempts.

The guard is a pure decision function: it never touches storage. The
persisted ``state`` may be stale (a lock whose window already elapsed), so
every read path goes through :meth:`AttemptGuard.effective_state` or
:meth:`AttemptGuard.current_view` instead of trusting the stored flag.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .domain import AuthenticatorState

if TYPE_CHECKING:
    from .domain import AuthenticatorRecord


@dataclass(frozen=True)
class LockoutPolicy:
    """Lockout configuration.

    Attributes:
        max_failures: Consecutive failures that lock the authenticator.
        lockout_duration: How long a locked authenticator rejects all codes.
    """

    max_failures: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)

    def __post_init__(self) -> None:
        if self.max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        if self.lockout_duration <= timedelta(0):
            raise ValueError("lockout_duration must be positive")


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of :meth:`AttemptGuard.evaluate`.

    Attributes:
        allowed: Whether the attempt may be evaluated at all.
        locked_until: End of the lockout window when not allowed.
        lazy_unlock: True when a stored lock was found to have elapsed; the
            caller resets counters when persisting the next outcome.
    """

    allowed: bool
    locked_until: datetime | None = None
    lazy_unlock: bool = False

    @classmethod
    def allow(cls, *, lazy_unlock: bool = False) -> GuardDecision:
        return cls(allowed=True, lazy_unlock=lazy_unlock)

    @classmethod
    def locked(cls, until: datetime) -> GuardDecision:
        return cls(allowed=False, locked_until=until)


@dataclass(frozen=True)
class AttemptOutcome:
    """Counter and state values to persist after an attempt."""

    failed_attempts: int
    state: AuthenticatorState
    locked_until: datetime | None = None

    @property
    def locks(self) -> bool:
        return self.state is AuthenticatorState.LOCKED


class AttemptGuard:
    """Evaluates lockout rules against a record's attempt history.

    Example:
        ```python
        guard = AttemptGuard(LockoutPolicy(max_failures=3))

        decision = guard.evaluate(record, now)
        if not decision.allowed:
            raise AuthenticatorLockedError(decision.locked_until)

        outcome = guard.on_failure(record, now)
        ```
    """

    def __init__(self, policy: LockoutPolicy | None = None) -> None:
        self.policy = policy or LockoutPolicy()

    @staticmethod
    def _lock_elapsed(record: AuthenticatorRecord, now: datetime) -> bool:
        return (
            record.state is AuthenticatorState.LOCKED
            and record.locked_until is not None
            and now >= record.locked_until
        )

    def effective_state(
        self, record: AuthenticatorRecord, now: datetime
    ) -> AuthenticatorState:
        """Derive the state a record is in at ``now``.

        An elapsed lock falls back to ACTIVE for confirmed records and to
        UNCONFIRMED otherwise, so a lock never promotes an enrolment.
        """
        if self._lock_elapsed(record, now):
            return (
                AuthenticatorState.ACTIVE
                if record.is_confirmed
                else AuthenticatorState.UNCONFIRMED
            )
        return record.state

    def current_view(
        self, record: AuthenticatorRecord, now: datetime
    ) -> AuthenticatorRecord:
        """Return the record as seen at ``now`` (lazy unlock applied, version kept)."""
        if not self._lock_elapsed(record, now):
            return record
        return record.model_copy(
            update={
                "state": self.effective_state(record, now),
                "failed_attempts": 0,
                "locked_until": None,
            }
        )

    def evaluate(self, record: AuthenticatorRecord, now: datetime) -> GuardDecision:
        """Decide whether an attempt against ``record`` may proceed."""
        if record.state is AuthenticatorState.LOCKED and record.locked_until is not None:
            if now < record.locked_until:
                return GuardDecision.locked(record.locked_until)
            return GuardDecision.allow(lazy_unlock=True)
        return GuardDecision.allow()

    def on_failure(self, record: AuthenticatorRecord, now: datetime) -> AttemptOutcome:
        """Count a failed attempt, locking once ``max_failures`` is reached."""
        if record.state is AuthenticatorState.LOCKED and not self._lock_elapsed(
            record, now
        ):
            return AttemptOutcome(
                record.failed_attempts, record.state, record.locked_until
            )

        view = self.current_view(record, now)
        failures = view.failed_attempts + 1
        if failures >= self.policy.max_failures:
            return AttemptOutcome(
                failures,
                AuthenticatorState.LOCKED,
                now + self.policy.lockout_duration,
            )
        return AttemptOutcome(failures, view.state)

    def on_success(self, record: AuthenticatorRecord) -> AttemptOutcome:  # noqa: ARG002
        """Reset counters unconditionally."""
        return AttemptOutcome(0, AuthenticatorState.ACTIVE)


__all__: list[str] = [
    "LockoutPolicy",
    "GuardDecision",
    "AttemptOutcome",
    "AttemptGuard",
]
