"""Authenticator error taxonomy.

Every error carries an :class:`ErrorKind` so hosts can map failures to
responses without depending on the class hierarchy.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from .primitives.locking import ResourceIdentifier


class ErrorKind(str, Enum):
    """Closed set of failure kinds reported to callers."""

    INVALID_ENROLLMENT = "invalid_enrollment"
    ALREADY_ENROLLED = "already_enrolled"
    NOT_ENROLLED = "not_enrolled"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    TYPE_DISABLED = "type_disabled"
    LOCKED = "locked"
    INVALID_CODE = "invalid_code"
    RESEND_THROTTLED = "resend_throttled"
    DELIVERY_FAILED = "delivery_failed"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    INSUFFICIENT_ENTROPY = "insufficient_entropy"


# ═══════════════════════════════════════════════════════════════
# BASE ERROR
# ═══════════════════════════════════════════════════════════════


class AuthenticatorError(Exception):
    """Root exception for the authenticator package."""

    kind: ErrorKind


# ═══════════════════════════════════════════════════════════════
# ENROLLMENT ERRORS
# ═══════════════════════════════════════════════════════════════


class InvalidEnrollmentError(AuthenticatorError):
    """Raised when create input does not fit the authenticator type.

    Examples:
        - TOTP enrolment with a destination
        - SMS/e-mail enrolment without a destination
    """

    kind = ErrorKind.INVALID_ENROLLMENT


class AlreadyEnrolledError(AuthenticatorError):
    """Raised when a confirmed authenticator already exists for the user."""

    kind = ErrorKind.ALREADY_ENROLLED


class NotEnrolledError(AuthenticatorError):
    """Raised when no authenticator exists for ``(user_id, type)``."""

    kind = ErrorKind.NOT_ENROLLED


class UnsupportedOperationError(AuthenticatorError):
    """Raised when an operation does not apply to the authenticator type."""

    kind = ErrorKind.UNSUPPORTED_OPERATION


class AuthenticatorTypeDisabledError(AuthenticatorError):
    """Raised when the authenticator type is not enabled in configuration."""

    kind = ErrorKind.TYPE_DISABLED


# ═══════════════════════════════════════════════════════════════
# VERIFICATION ERRORS
# ═══════════════════════════════════════════════════════════════


class AuthenticatorLockedError(AuthenticatorError):
    """Raised while an authenticator is inside its lockout window.

    Attributes:
        locked_until: Moment the lockout window elapses.
    """

    kind = ErrorKind.LOCKED

    def __init__(
        self,
        locked_until: datetime,
        message: str = "Authenticator is locked due to too many failed attempts",
    ) -> None:
        super().__init__(f"{message} (until {locked_until.isoformat()})")
        self.locked_until = locked_until


class InvalidCodeError(AuthenticatorError):
    """Raised when a submitted code does not verify."""

    kind = ErrorKind.INVALID_CODE


class CodeExpiredError(InvalidCodeError):
    """Raised when an out-of-band code is older than its validity window."""


class ResendThrottledError(AuthenticatorError):
    """Raised when a new code is requested inside the resend cooldown.

    Attributes:
        retry_after: Seconds until a new code may be requested.
    """

    kind = ErrorKind.RESEND_THROTTLED

    def __init__(self, retry_after: float) -> None:
        super().__init__(
            f"Please wait {int(retry_after) + 1} seconds before requesting a new code"
        )
        self.retry_after = retry_after


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE ERRORS
# ═══════════════════════════════════════════════════════════════


class DeliveryFailedError(AuthenticatorError):
    """Raised when the notification sender could not dispatch a code."""

    kind = ErrorKind.DELIVERY_FAILED

    def __init__(self, channel: str, recipient: str, reason: str) -> None:
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Failed to deliver via {channel} to {recipient}: {reason}")


class ConcurrentModificationError(AuthenticatorError):
    """Raised when a conditional write loses against a concurrent writer.

    The store raises this on a version mismatch; the service raises it once
    its bounded retries are exhausted.
    """

    kind = ErrorKind.CONCURRENT_MODIFICATION


class InsufficientEntropyError(AuthenticatorError):
    """Raised when the operating system random source cannot be read."""

    kind = ErrorKind.INSUFFICIENT_ENTROPY


class LockAcquisitionError(ConcurrentModificationError):
    """Failed to acquire a record lock with detailed context."""

    def __init__(
        self,
        resource: ResourceIdentifier,
        timeout: float,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.timeout = timeout
        self.reason = reason

        msg = (
            f"Failed to acquire {resource.lock_mode} lock on "
            f"{resource.resource_type}:{resource.resource_id} "
            f"within {timeout}s"
        )
        if reason:
            msg += f" - {reason}"

        super().__init__(msg)


__all__: list[str] = [
    "ErrorKind",
    # Base
    "AuthenticatorError",
    # Enrollment
    "InvalidEnrollmentError",
    "AlreadyEnrolledError",
    "NotEnrolledError",
    "UnsupportedOperationError",
    "AuthenticatorTypeDisabledError",
    # Verification
    "AuthenticatorLockedError",
    "InvalidCodeError",
    "CodeExpiredError",
    "ResendThrottledError",
    # Infrastructure
    "DeliveryFailedError",
    "ConcurrentModificationError",
    "InsufficientEntropyError",
    "LockAcquisitionError",
]
