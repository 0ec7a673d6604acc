"""ILockStrategy — protocol for per-record pessimistic locking."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..primitives.locking import ResourceIdentifier


@runtime_checkable
class ILockStrategy(Protocol):
    """
    Lock strategy protocol.

    Implementations can use Redis (Redlock), database locks
    (SELECT FOR UPDATE), or in-memory queues for tests and single-process
    hosts.
    """

    async def acquire(
        self,
        resource: ResourceIdentifier,
        *,
        timeout: float = 10.0,
        ttl: float = 30.0,
    ) -> str:
        """
        Acquire a lock for the given resource.

        Args:
            resource: The resource to lock.
            timeout: Maximum time to wait for the lock.
            ttl: Time-to-live (seconds). The lock auto-expires so a crashed
                process cannot hold it forever.

        Returns:
            A unique lock token required for release.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired in time.
        """
        ...

    async def release(
        self,
        resource: ResourceIdentifier,
        token: str,
    ) -> None:
        """Release a previously acquired lock."""
        ...

    async def health_check(self) -> bool:
        """Return True if the lock service is responsive."""
        ...
