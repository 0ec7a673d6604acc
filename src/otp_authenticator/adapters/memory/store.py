"""InMemoryAuthenticatorStore — dict-backed store for tests and demos."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...exceptions import ConcurrentModificationError
from ...ports.store import IAuthenticatorStore

if TYPE_CHECKING:
    from ...domain import AuthenticatorRecord, AuthenticatorType


class InMemoryAuthenticatorStore(IAuthenticatorStore):
    """In-memory authenticator store for TESTING ONLY.

    ⚠️ WARNING: Secrets are kept in plain text in process memory.
    Do NOT use in production!

    Conditional writes are atomic because the check and the assignment
    happen without an intervening ``await``.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[Any, AuthenticatorType], AuthenticatorRecord] = {}

    async def load(
        self, user_id: Any, authenticator_type: AuthenticatorType
    ) -> AuthenticatorRecord | None:
        return self._records.get((user_id, authenticator_type))

    async def save(
        self,
        record: AuthenticatorRecord,
        expected_version: int | None = None,
    ) -> None:
        current = self._records.get(record.key)
        if expected_version is None:
            if current is not None:
                raise ConcurrentModificationError(
                    f"Authenticator {record.type.value} for user {record.user_id!r} "
                    "already exists"
                )
        elif current is None or current.version != expected_version:
            found = None if current is None else current.version
            raise ConcurrentModificationError(
                f"Authenticator {record.type.value} for user {record.user_id!r}: "
                f"expected version {expected_version}, found {found}"
            )
        self._records[record.key] = record

    async def delete(self, user_id: Any, authenticator_type: AuthenticatorType) -> None:
        self._records.pop((user_id, authenticator_type), None)

    # ── Test helpers ─────────────────────────────────────────────

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
