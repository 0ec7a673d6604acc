"""IAuthenticatorStore — persistence port for authenticator records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..domain import AuthenticatorRecord, AuthenticatorType


@runtime_checkable
class IAuthenticatorStore(Protocol):
    """
    Storage for authenticator records, keyed by ``(user_id, type)``.

    The core does not prescribe a storage format. It only needs atomic
    conditional writes: ``save`` must compare the stored version with
    ``expected_version`` and write in one step.

    Example implementation:
        ```python
        class SqlAuthenticatorStore(IAuthenticatorStore):
            async def save(self, record, expected_version=None):
                if expected_version is None:
                    # INSERT ... ON CONFLICT DO NOTHING, 0 rows -> conflict
                    ...
                else:
                    # UPDATE ... WHERE user_id = ? AND type = ? AND version = ?
                    # 0 rows -> raise ConcurrentModificationError
                    ...
        ```
    """

    async def load(
        self, user_id: Any, authenticator_type: AuthenticatorType
    ) -> AuthenticatorRecord | None:
        """Load the record for a user and type.

        Returns:
            The stored record or None if the user is not enrolled.
        """
        ...

    async def save(
        self,
        record: AuthenticatorRecord,
        expected_version: int | None = None,
    ) -> None:
        """Persist a record conditionally.

        Args:
            record: New record state (its ``version`` is the new version).
            expected_version: Version currently stored. None means the key
                must not exist yet (insert).

        Raises:
            ConcurrentModificationError: If the stored version differs.
        """
        ...

    async def delete(self, user_id: Any, authenticator_type: AuthenticatorType) -> None:
        """Remove the record. Missing records are ignored."""
        ...
