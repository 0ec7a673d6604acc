"""Domain model: authenticator records and their enums."""

from __future__ import annotations

from .record import AuthenticatorRecord, AuthenticatorState, AuthenticatorType

__all__ = [
    "AuthenticatorRecord",
    "AuthenticatorState",
    "AuthenticatorType",
]
