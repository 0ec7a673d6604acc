"""OTP Authenticator

Second-factor enrolment and verification — "Prove it's still you."

Issues, verifies and locks out one-time-password authenticators bound to a
user: TOTP apps (RFC 6238) and codes dispatched over SMS or e-mail.

Usage:
    ```python
    from otp_authenticator import (
        AuthenticatorService,
        AuthenticatorType,
        InMemoryAuthenticatorStore,
    )

    service = AuthenticatorService(InMemoryAuthenticatorStore())
    record = await service.create("user-1", AuthenticatorType.TOTP)
    setup = service.enrollment(record, account_name="alice@example.com")
    await service.verify("user-1", AuthenticatorType.TOTP, code_from_app)
    ```
"""

from __future__ import annotations

from .adapters.memory import (
    InMemoryAuthenticatorStore,
    InMemoryLockStrategy,
    InMemoryNotificationSender,
)
from .concurrency import CriticalSection
from .config import AuthenticatorConfig, MessageTemplate
from .domain import AuthenticatorRecord, AuthenticatorState, AuthenticatorType
from .exceptions import (
    AlreadyEnrolledError,
    AuthenticatorError,
    AuthenticatorLockedError,
    AuthenticatorTypeDisabledError,
    CodeExpiredError,
    ConcurrentModificationError,
    DeliveryFailedError,
    ErrorKind,
    InsufficientEntropyError,
    InvalidCodeError,
    InvalidEnrollmentError,
    LockAcquisitionError,
    NotEnrolledError,
    ResendThrottledError,
    UnsupportedOperationError,
)
from .guard import AttemptGuard, AttemptOutcome, GuardDecision, LockoutPolicy
from .observability import AuthenticatorMetrics
from .ports import IAuthenticatorStore, ILockStrategy, INotificationSender, OtpMessage
from .primitives import IIDGenerator, ResourceIdentifier, UUID4Generator
from .service import AuthenticatorService
from .totp import TotpEnrollment

__version__ = "0.1.0"

__all__: list[str] = [
    # Service
    "AuthenticatorService",
    "AuthenticatorConfig",
    "MessageTemplate",
    # Domain
    "AuthenticatorRecord",
    "AuthenticatorState",
    "AuthenticatorType",
    "TotpEnrollment",
    # Guard
    "AttemptGuard",
    "AttemptOutcome",
    "GuardDecision",
    "LockoutPolicy",
    # Ports
    "IAuthenticatorStore",
    "ILockStrategy",
    "INotificationSender",
    "OtpMessage",
    "IIDGenerator",
    # Adapters
    "InMemoryAuthenticatorStore",
    "InMemoryLockStrategy",
    "InMemoryNotificationSender",
    "UUID4Generator",
    # Concurrency
    "CriticalSection",
    "ResourceIdentifier",
    # Observability
    "AuthenticatorMetrics",
    # Errors
    "ErrorKind",
    "AuthenticatorError",
    "InvalidEnrollmentError",
    "AlreadyEnrolledError",
    "NotEnrolledError",
    "UnsupportedOperationError",
    "AuthenticatorTypeDisabledError",
    "AuthenticatorLockedError",
    "InvalidCodeError",
    "CodeExpiredError",
    "ResendThrottledError",
    "DeliveryFailedError",
    "ConcurrentModificationError",
    "InsufficientEntropyError",
    "LockAcquisitionError",
]
