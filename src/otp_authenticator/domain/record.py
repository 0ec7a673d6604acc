"""AuthenticatorRecord — one user's enrolled second factor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import InvalidEnrollmentError


class AuthenticatorType(str, Enum):
    """Supported second-factor channels."""

    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"

    @property
    def is_out_of_band(self) -> bool:
        """True for channels whose codes are dispatched rather than derived."""
        return self is not AuthenticatorType.TOTP


class AuthenticatorState(str, Enum):
    """Persisted lifecycle state of a record."""

    UNCONFIRMED = "unconfirmed"
    ACTIVE = "active"
    LOCKED = "locked"


class AuthenticatorRecord(BaseModel):
    """Persisted authenticator entity.

    Records are immutable; the service derives a new instance with
    :meth:`evolve` for every transition and hands it to the
    store together with the version it was read at.

    Usage::

        record = AuthenticatorRecord(
            id="a1",
            user_id="user-1",
            type=AuthenticatorType.SMS,
            destination="+15550100",
            created_at=datetime.now(timezone.utc),
        )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    user_id: Any
    type: AuthenticatorType
    secret: bytes | None = Field(default=None, repr=False)
    destination: str | None = None
    state: AuthenticatorState = AuthenticatorState.UNCONFIRMED
    failed_attempts: int = Field(default=0, ge=0)
    locked_until: datetime | None = None
    last_issued_code: str | None = Field(default=None, repr=False)
    last_issued_at: datetime | None = None
    code_consumed: bool = False
    confirmed_at: datetime | None = None
    last_used_counter: int | None = None
    created_at: datetime
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_invariants(self) -> AuthenticatorRecord:
        if self.type is AuthenticatorType.TOTP:
            if not self.secret:
                raise InvalidEnrollmentError("TOTP authenticator requires a secret")
            if self.destination is not None:
                raise InvalidEnrollmentError(
                    "TOTP authenticator must not have a destination"
                )
            if self.last_issued_code is not None:
                raise InvalidEnrollmentError(
                    "TOTP codes are derived and never stored on the record"
                )
        else:
            if not self.destination:
                raise InvalidEnrollmentError(
                    f"{self.type.value} authenticator requires a destination"
                )
            if self.secret is not None:
                raise InvalidEnrollmentError(
                    f"{self.type.value} authenticator must not carry a secret"
                )

        if (self.state is AuthenticatorState.LOCKED) != (self.locked_until is not None):
            raise InvalidEnrollmentError(
                "locked_until must be set exactly when the record is locked"
            )
        return self

    @property
    def key(self) -> tuple[Any, AuthenticatorType]:
        """Storage key: one record per (user, type)."""
        return (self.user_id, self.type)

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    def evolve(self, **changes: Any) -> AuthenticatorRecord:
        """Return a validated copy with ``changes`` applied and the version bumped."""
        data = self.model_dump()
        data.update(changes)
        data["version"] = self.version + 1
        return AuthenticatorRecord.model_validate(data)
