"""AuthenticatorService — enrolment, dispatch, verification and removal.

The service is the only component callers need. It wires together the
pure :mod:`~otp_authenticator.totp` functions, the
:class:`~otp_authenticator.guard.AttemptGuard` lockout policy and the
store / sender / lock ports supplied by the host.

Every read-modify-write of a record runs as one unit: an optional
per-record lock is held for load-evaluate-persist, and the write itself is
conditional on the version that was read. A conflicting write is retried
from a fresh load up to ``config.max_write_retries`` times.
"""

from __future__ import annotations

import asyncio
import contextlib
import hmac
import logging
import secrets
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from . import totp
from .concurrency import CriticalSection
from .config import AuthenticatorConfig
from .domain import AuthenticatorRecord, AuthenticatorState, AuthenticatorType
from .exceptions import (
    AlreadyEnrolledError,
    AuthenticatorError,
    AuthenticatorLockedError,
    AuthenticatorTypeDisabledError,
    CodeExpiredError,
    ConcurrentModificationError,
    DeliveryFailedError,
    InsufficientEntropyError,
    InvalidCodeError,
    InvalidEnrollmentError,
    NotEnrolledError,
    ResendThrottledError,
    UnsupportedOperationError,
)
from .guard import AttemptGuard
from .observability import AuthenticatorMetrics
from .ports.sender import OtpMessage
from .primitives import ResourceIdentifier, UUID4Generator

if TYPE_CHECKING:
    from collections.abc import Iterator
    from contextlib import AbstractAsyncContextManager

    from .ports.locking import ILockStrategy
    from .ports.sender import INotificationSender
    from .ports.store import IAuthenticatorStore
    from .primitives import IIDGenerator

logger = logging.getLogger("otp_authenticator.service")

UserIdT = TypeVar("UserIdT", bound=Hashable)
T = TypeVar("T")

INVALID_CODE_MESSAGE = "Invalid authentication code."
CODE_EXPIRED_MESSAGE = "Authentication code has expired."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Change:
    """A decided transition: the record to persist and what to report after."""

    record: AuthenticatorRecord
    error: AuthenticatorError | None = None
    code: str | None = None


class AuthenticatorService(Generic[UserIdT]):
    """Multi-factor authenticator service.

    Example:
        ```python
        service = AuthenticatorService(
            InMemoryAuthenticatorStore(),
            sender=MySmsSender(),
            lock_strategy=InMemoryLockStrategy(),
        )

        # TOTP: enrol, show the QR code, confirm with the first code
        record = await service.create("user-1", AuthenticatorType.TOTP)
        setup = service.enrollment(record, account_name="alice@example.com")
        await service.verify("user-1", AuthenticatorType.TOTP, "123456")

        # SMS: enrol, dispatch a code, verify it
        await service.create("user-1", AuthenticatorType.SMS, "+15550100")
        await service.attempt("user-1", AuthenticatorType.SMS)
        await service.verify("user-1", AuthenticatorType.SMS, "654321")
        ```

    Every public operation accepts ``timeout`` (seconds); when it elapses
    the operation is cancelled and ``asyncio.TimeoutError`` is raised. Nothing is
    persisted unless the single conditional write completed.
    """

    RESOURCE_TYPE = "Authenticator"

    def __init__(
        self,
        store: IAuthenticatorStore,
        *,
        sender: INotificationSender | None = None,
        config: AuthenticatorConfig | None = None,
        lock_strategy: ILockStrategy | None = None,
        id_generator: IIDGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
        metrics: AuthenticatorMetrics | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence for authenticator records.
            sender: SMS/e-mail delivery; required to dispatch out-of-band codes.
            config: Service configuration (defaults apply when omitted).
            lock_strategy: Per-record lock; without it only the optimistic
                conditional write protects concurrent updates.
            id_generator: Record id strategy (UUIDv4 by default).
            clock: Returns the current aware datetime (UTC by default).
            metrics: Metrics recorder.
        """
        self.store = store
        self.sender = sender
        self.config = config or AuthenticatorConfig()
        self.guard = AttemptGuard(self.config.lockout)
        self.lock_strategy = lock_strategy
        self.id_generator = id_generator or UUID4Generator()
        self.metrics = metrics or AuthenticatorMetrics()
        self._clock = clock or _utcnow

    # ── Public operations ────────────────────────────────────────

    async def create(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        destination: str | None = None,
        *,
        seed: bytes | None = None,
        timeout: float | None = None,
    ) -> AuthenticatorRecord:
        """Enrol a new, unconfirmed authenticator.

        Args:
            user_id: Owner of the authenticator.
            authenticator_type: TOTP, SMS or EMAIL.
            destination: Phone number or e-mail address (SMS/EMAIL only).
            seed: Extra bytes mixed into a generated TOTP secret.
            timeout: Upper bound in seconds for the whole operation.

        Returns:
            The persisted record. For TOTP it carries the secret; hand it to
            :meth:`enrollment` and do not keep it anywhere else.

        Raises:
            InvalidEnrollmentError: If destination does not fit the type.
            AlreadyEnrolledError: If a confirmed authenticator exists.
            AuthenticatorLockedError: If an unconfirmed enrolment is inside
                its lockout window.
            InsufficientEntropyError: If no secret could be generated.
        """
        with self._observe("create", authenticator_type):
            return await self._bounded(
                self._create(user_id, authenticator_type, destination, seed),
                timeout,
            )

    async def attempt(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        destination: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Issue a fresh out-of-band code and dispatch it.

        Any previously issued code for the record stops verifying.

        Args:
            user_id: Owner of the authenticator.
            authenticator_type: SMS or EMAIL.
            destination: Optional; must equal the enrolled destination.
            timeout: Upper bound in seconds for the whole operation.

        Raises:
            UnsupportedOperationError: For TOTP, or when no sender is wired.
            NotEnrolledError: If the user has no such authenticator.
            AuthenticatorLockedError: While the lockout window runs.
            ResendThrottledError: Inside the configured resend cooldown.
            DeliveryFailedError: If the sender could not deliver the code.
        """
        with self._observe("attempt", authenticator_type):
            await self._bounded(
                self._attempt(user_id, authenticator_type, destination), timeout
            )

    async def verify(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        code: str,
        *,
        timeout: float | None = None,
    ) -> None:
        """Verify a code; the first success confirms the enrolment.

        Raises:
            NotEnrolledError: If the user has no such authenticator.
            AuthenticatorLockedError: While locked (the code is not looked
                at), or when this failure reached the threshold.
            InvalidCodeError: If the code did not verify.
        """
        with self._observe("verify", authenticator_type):
            await self._bounded(
                self._verify(user_id, authenticator_type, code), timeout
            )

    async def delete(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        *,
        timeout: float | None = None,
    ) -> None:
        """Remove an authenticator. Removing a missing one is not an error."""
        with self._observe("delete", authenticator_type):
            await self._bounded(self._delete(user_id, authenticator_type), timeout)

    async def get(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
    ) -> AuthenticatorRecord | None:
        """Load a record as it is at this moment (an elapsed lock reads as unlocked)."""
        record = await self.store.load(user_id, authenticator_type)
        if record is None:
            return None
        return self.guard.current_view(record, self._now())

    async def status(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
    ) -> AuthenticatorState | None:
        """Effective state of a user's authenticator, None if not enrolled."""
        record = await self.store.load(user_id, authenticator_type)
        if record is None:
            return None
        return self.guard.effective_state(record, self._now())

    def enrollment(
        self, record: AuthenticatorRecord, account_name: str
    ) -> totp.TotpEnrollment:
        """Secret, manual key and otpauth:// URI for a TOTP record."""
        if record.type is not AuthenticatorType.TOTP or record.secret is None:
            raise UnsupportedOperationError(
                f"Enrollment data exists only for TOTP, not {record.type.value}"
            )
        return totp.build_enrollment(
            record.secret,
            account_name,
            self.config.issuer,
            step=self.config.totp_step,
            digits=self.config.code_length,
        )

    # ── Operation bodies ─────────────────────────────────────────

    async def _create(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        destination: str | None,
        seed: bytes | None,
    ) -> AuthenticatorRecord:
        self._ensure_enabled(authenticator_type)
        destination = self._validate_destination(authenticator_type, destination)
        secret = (
            totp.generate_secret(seed)
            if authenticator_type is AuthenticatorType.TOTP
            else None
        )

        def decide(current: AuthenticatorRecord | None, now: datetime) -> _Change:
            if current is not None:
                if current.is_confirmed:
                    raise AlreadyEnrolledError(
                        f"User already has a confirmed {authenticator_type.value} "
                        "authenticator; delete it before enrolling again"
                    )
                # A locked enrolment keeps its lockout until the window elapses
                self._admit(current, now)
            return _Change(
                AuthenticatorRecord(
                    id=self.id_generator.next_id(),
                    user_id=user_id,
                    type=authenticator_type,
                    secret=secret,
                    destination=destination,
                    created_at=now,
                    version=0 if current is None else current.version + 1,
                )
            )

        change = await self._write(user_id, authenticator_type, decide)
        logger.info(
            "Authenticator created",
            extra={
                "user_id": str(user_id),
                "authenticator_type": authenticator_type.value,
                "authenticator_id": change.record.id,
            },
        )
        return change.record

    async def _attempt(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        destination: str | None,
    ) -> None:
        if not authenticator_type.is_out_of_band:
            raise UnsupportedOperationError(
                "TOTP codes are derived by the user's app; nothing to dispatch"
            )
        self._ensure_enabled(authenticator_type)
        if self.sender is None:
            raise UnsupportedOperationError(
                f"{authenticator_type.value} is enabled but no notification "
                "sender has been configured"
            )

        def decide(current: AuthenticatorRecord | None, now: datetime) -> _Change:
            record = self._require(current, user_id, authenticator_type)
            if destination is not None and destination.strip() != record.destination:
                raise InvalidEnrollmentError(
                    "Destination does not match the enrolled destination"
                )
            record = self._admit(record, now)

            cooldown = self.config.resend_cooldown
            if cooldown and record.last_issued_at is not None:
                elapsed = now - record.last_issued_at
                if elapsed < cooldown:
                    raise ResendThrottledError((cooldown - elapsed).total_seconds())

            code = self._generate_code()
            return _Change(
                record.evolve(
                    last_issued_code=code,
                    last_issued_at=now,
                    code_consumed=False,
                ),
                code=code,
            )

        change = await self._write(user_id, authenticator_type, decide)
        await self._dispatch(change.record, change.code)

    async def _verify(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        code: str,
    ) -> None:
        self._ensure_enabled(authenticator_type)

        def decide(current: AuthenticatorRecord | None, now: datetime) -> _Change:
            record = self._admit(
                self._require(current, user_id, authenticator_type), now
            )
            if record.type is AuthenticatorType.TOTP:
                counter, failure = self._check_totp(record, code, now)
            else:
                counter, failure = None, self._check_out_of_band(record, code, now)

            if failure is None:
                return _Change(self._succeed(record, now, counter))

            outcome = self.guard.on_failure(record, now)
            updated = record.evolve(
                failed_attempts=outcome.failed_attempts,
                state=outcome.state,
                locked_until=outcome.locked_until,
            )
            if outcome.locks:
                assert outcome.locked_until is not None
                logger.warning(
                    "Authenticator locked after %d failed attempts",
                    outcome.failed_attempts,
                    extra={
                        "user_id": str(user_id),
                        "authenticator_type": authenticator_type.value,
                    },
                )
                return _Change(updated, AuthenticatorLockedError(outcome.locked_until))
            return _Change(updated, failure)

        change = await self._write(user_id, authenticator_type, decide)
        if change.error is not None:
            raise change.error
        logger.debug(
            "Authenticator verified",
            extra={"user_id": str(user_id), "authenticator_type": authenticator_type.value},
        )

    async def _delete(
        self, user_id: UserIdT, authenticator_type: AuthenticatorType
    ) -> None:
        async with self._section(user_id, authenticator_type):
            await self.store.delete(user_id, authenticator_type)
        logger.info(
            "Authenticator deleted",
            extra={"user_id": str(user_id), "authenticator_type": authenticator_type.value},
        )

    # ── Decisions ────────────────────────────────────────────────

    def _admit(self, record: AuthenticatorRecord, now: datetime) -> AuthenticatorRecord:
        """Apply the lockout rule; returns the lazily unlocked view."""
        decision = self.guard.evaluate(record, now)
        if not decision.allowed:
            assert decision.locked_until is not None
            raise AuthenticatorLockedError(decision.locked_until)
        if decision.lazy_unlock:
            logger.info(
                "Lockout window elapsed",
                extra={"authenticator_id": record.id},
            )
        return self.guard.current_view(record, now)

    def _check_totp(
        self, record: AuthenticatorRecord, code: str, now: datetime
    ) -> tuple[int | None, InvalidCodeError | None]:
        assert record.secret is not None
        counter = totp.match_counter(
            record.secret,
            code,
            now,
            step=self.config.totp_step,
            digits=self.config.code_length,
            window_steps=self.config.totp_window,
        )
        if counter is None:
            return None, InvalidCodeError(INVALID_CODE_MESSAGE)
        if (
            self.config.reject_replayed_totp
            and record.last_used_counter is not None
            and counter <= record.last_used_counter
        ):
            logger.info(
                "Rejected replayed TOTP code", extra={"authenticator_id": record.id}
            )
            return None, InvalidCodeError(INVALID_CODE_MESSAGE)
        return counter, None

    def _check_out_of_band(
        self, record: AuthenticatorRecord, code: str, now: datetime
    ) -> InvalidCodeError | None:
        if (
            record.last_issued_code is None
            or record.last_issued_at is None
            or record.code_consumed
        ):
            return InvalidCodeError(INVALID_CODE_MESSAGE)
        if now - record.last_issued_at > self.config.code_ttl:
            return CodeExpiredError(CODE_EXPIRED_MESSAGE)
        if not hmac.compare_digest(
            record.last_issued_code.encode(), code.strip().encode()
        ):
            return InvalidCodeError(INVALID_CODE_MESSAGE)
        return None

    def _succeed(
        self, record: AuthenticatorRecord, now: datetime, counter: int | None
    ) -> AuthenticatorRecord:
        outcome = self.guard.on_success(record)
        changes: dict[str, Any] = {
            "failed_attempts": outcome.failed_attempts,
            "state": outcome.state,
            "locked_until": outcome.locked_until,
        }
        if not record.is_confirmed:
            changes["confirmed_at"] = now
        if record.type is AuthenticatorType.TOTP:
            changes["last_used_counter"] = counter
        else:
            changes["code_consumed"] = True
        return record.evolve(**changes)

    # ── Helpers ──────────────────────────────────────────────────

    async def _write(
        self,
        user_id: UserIdT,
        authenticator_type: AuthenticatorType,
        decide: Callable[[AuthenticatorRecord | None, datetime], _Change],
    ) -> _Change:
        """Load, decide and conditionally save, retrying on write conflicts.

        ``decide`` may raise to abort; nothing is persisted in that case.
        """
        retries = self.config.max_write_retries
        async with self._section(user_id, authenticator_type):
            for attempt in range(1, retries + 1):
                current = await self.store.load(user_id, authenticator_type)
                change = decide(current, self._now())
                try:
                    await self.store.save(
                        change.record,
                        expected_version=None if current is None else current.version,
                    )
                except ConcurrentModificationError:
                    logger.info(
                        "Write conflict on %s authenticator (attempt %d/%d)",
                        authenticator_type.value,
                        attempt,
                        retries,
                    )
                    continue
                return change

        raise ConcurrentModificationError(
            f"Gave up updating {authenticator_type.value} authenticator after "
            f"{retries} conflicting writes"
        )

    async def _dispatch(self, record: AuthenticatorRecord, code: str | None) -> None:
        assert self.sender is not None
        assert record.destination is not None
        assert code is not None

        expires_at = self._now() + self.config.code_ttl
        template = self.config.template_for(record.type)
        subject, body, html_body = template.render(
            code=code,
            expires_in_minutes=int(self.config.code_ttl.total_seconds() // 60),
        )
        message = OtpMessage(
            code=code,
            channel=record.type,
            body=body,
            subject=subject,
            html_body=html_body,
            expires_at=expires_at,
        )

        try:
            await self.sender.send(record.destination, message)
        except DeliveryFailedError:
            logger.warning(
                "Code delivery failed", extra={"authenticator_id": record.id}
            )
            raise
        except Exception as exc:
            logger.warning(
                "Code delivery failed", extra={"authenticator_id": record.id}
            )
            raise DeliveryFailedError(
                record.type.value, record.destination, str(exc)
            ) from exc

    def _section(
        self, user_id: UserIdT, authenticator_type: AuthenticatorType
    ) -> AbstractAsyncContextManager[Any]:
        if self.lock_strategy is None:
            return contextlib.nullcontext()
        return CriticalSection(
            [
                ResourceIdentifier(
                    self.RESOURCE_TYPE, f"{user_id}:{authenticator_type.value}"
                )
            ],
            self.lock_strategy,
            timeout=self.config.lock_timeout,
            ttl=self.config.lock_ttl,
        )

    @contextlib.contextmanager
    def _observe(
        self, operation: str, authenticator_type: AuthenticatorType
    ) -> Iterator[None]:
        with self.metrics.operation(
            operation, authenticator_type=authenticator_type.value
        ) as result:
            try:
                yield
            except AuthenticatorError as exc:
                result.set(exc.kind.value)
                raise

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float | None) -> T:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)

    def _ensure_enabled(self, authenticator_type: AuthenticatorType) -> None:
        if authenticator_type not in self.config.enabled_types:
            raise AuthenticatorTypeDisabledError(
                f"Authenticator type {authenticator_type.value} is not enabled "
                "in the configuration."
            )

    @staticmethod
    def _validate_destination(
        authenticator_type: AuthenticatorType, destination: str | None
    ) -> str | None:
        if authenticator_type is AuthenticatorType.TOTP:
            if destination is not None:
                raise InvalidEnrollmentError(
                    "TOTP authenticators do not take a destination"
                )
            return None
        if destination is None or not destination.strip():
            raise InvalidEnrollmentError(
                "Destination is required for email and SMS authentication."
            )
        return destination.strip()

    @staticmethod
    def _require(
        record: AuthenticatorRecord | None,
        user_id: Any,
        authenticator_type: AuthenticatorType,
    ) -> AuthenticatorRecord:
        if record is None:
            raise NotEnrolledError(
                f"No {authenticator_type.value} authenticator found for user {user_id!r}"
            )
        return record

    def _generate_code(self) -> str:
        length = self.config.code_length
        try:
            value = secrets.randbelow(10**length)
        except (OSError, NotImplementedError) as exc:
            raise InsufficientEntropyError(
                "Operating system random source is unavailable"
            ) from exc
        return str(value).zfill(length)

    def _now(self) -> datetime:
        return self._clock()


__all__: list[str] = ["AuthenticatorService"]
