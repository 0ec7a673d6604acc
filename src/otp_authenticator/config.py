"""Authenticator configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from .domain import AuthenticatorType
from .guard import LockoutPolicy
from .totp import DEFAULT_DIGITS, DEFAULT_STEP, DEFAULT_WINDOW

logger = logging.getLogger("otp_authenticator.config")


@dataclass(frozen=True)
class MessageTemplate:
    """Text sent with an out-of-band code.

    Templates use ``str.format`` placeholders; ``{code}`` and
    ``{expires_in_minutes}`` are available.
    """

    body: str
    subject: str | None = None
    html_body: str | None = None

    def render(self, **context: Any) -> tuple[str | None, str, str | None]:
        """Render ``(subject, body, html_body)``."""
        try:
            subject = self.subject.format(**context) if self.subject else None
            body = self.body.format(**context)
            html_body = self.html_body.format(**context) if self.html_body else None
        except KeyError as e:
            logger.error("Missing template variable: %s", e)
            raise
        return subject, body, html_body


DEFAULT_EMAIL_TEMPLATE = MessageTemplate(
    subject="Authentication Code",
    body="Your authentication code: {code}",
    html_body="<h3>Your authentication code:</h3><br/><strong>{code}</strong>",
)
DEFAULT_SMS_TEMPLATE = MessageTemplate(body="Your authentication code: {code}")


def _default_templates() -> dict[AuthenticatorType, MessageTemplate]:
    return {
        AuthenticatorType.EMAIL: DEFAULT_EMAIL_TEMPLATE,
        AuthenticatorType.SMS: DEFAULT_SMS_TEMPLATE,
    }


@dataclass(frozen=True)
class AuthenticatorConfig:
    """Authenticator service configuration.

    Attributes:
        code_length: Digits in TOTP and out-of-band codes.
        totp_step: TOTP time step in seconds.
        totp_window: Accept TOTP codes ±N steps for clock drift.
        code_ttl: Validity window of an SMS/e-mail code.
        lockout: Failure threshold and lockout window.
        enabled_types: Authenticator types callers may use.
        issuer: Application name shown in authenticator apps.
        resend_cooldown: Minimum time between two dispatched codes
            (zero disables the check).
        reject_replayed_totp: Reject a TOTP code whose time step was
            already accepted.
        max_write_retries: Conditional-write attempts before giving up.
        lock_timeout: Seconds to wait for a per-record lock.
        lock_ttl: Lock time-to-live in seconds.
        templates: Message templates per out-of-band channel.
    """

    code_length: int = DEFAULT_DIGITS
    totp_step: int = DEFAULT_STEP
    totp_window: int = DEFAULT_WINDOW
    code_ttl: timedelta = timedelta(minutes=5)
    lockout: LockoutPolicy = field(default_factory=LockoutPolicy)
    enabled_types: frozenset[AuthenticatorType] = frozenset(AuthenticatorType)
    issuer: str = "otp-authenticator"
    resend_cooldown: timedelta = timedelta(0)
    reject_replayed_totp: bool = True
    max_write_retries: int = 3
    lock_timeout: float = 10.0
    lock_ttl: float = 30.0
    templates: Mapping[AuthenticatorType, MessageTemplate] = field(
        default_factory=_default_templates
    )

    def __post_init__(self) -> None:
        if not 1 <= self.code_length <= 10:
            raise ValueError("code_length must be between 1 and 10")
        if self.totp_step <= 0:
            raise ValueError("totp_step must be positive")
        if self.totp_window < 0:
            raise ValueError("totp_window must not be negative")
        if self.code_ttl <= timedelta(0):
            raise ValueError("code_ttl must be positive")
        if self.resend_cooldown < timedelta(0):
            raise ValueError("resend_cooldown must not be negative")
        if self.max_write_retries < 1:
            raise ValueError("max_write_retries must be at least 1")
        if self.lock_timeout <= 0:
            raise ValueError("lock_timeout must be positive")

    def template_for(self, type_: AuthenticatorType) -> MessageTemplate:
        """Template for an out-of-band channel, falling back to the defaults."""
        template = self.templates.get(type_)
        if template is None:
            template = _default_templates()[type_]
        return template


__all__: list[str] = [
    "MessageTemplate",
    "DEFAULT_EMAIL_TEMPLATE",
    "DEFAULT_SMS_TEMPLATE",
    "AuthenticatorConfig",
]
