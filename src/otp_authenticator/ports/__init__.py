"""Ports consumed by the authenticator service."""

from __future__ import annotations

from .locking import ILockStrategy
from .sender import INotificationSender, OtpMessage
from .store import IAuthenticatorStore

__all__ = [
    "IAuthenticatorStore",
    "ILockStrategy",
    "INotificationSender",
    "OtpMessage",
]
