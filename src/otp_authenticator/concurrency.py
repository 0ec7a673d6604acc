"""Critical sections around authenticator read-modify-write cycles."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from .exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from .ports.locking import ILockStrategy
    from .primitives.locking import ResourceIdentifier

logger = logging.getLogger("otp_authenticator.locking")


class CriticalSection:
    """
    Async context manager holding locks on one or more resources.

    The service locks one record per operation. Hosts that change several
    records together (every authenticator of a user, say) use the same
    section over all of them with the same lock strategy.

    Features:
    - Deduplicates resources (write wins over read)
    - Acquires in sorted order so two sections never deadlock
    - Rolls back partially acquired locks on failure
    - Releases in reverse order on exit

    Usage:
        ```python
        resource = ResourceIdentifier("Authenticator", "user-1:sms")

        async with CriticalSection([resource], lock_strategy, timeout=5.0):
            record = await store.load("user-1", AuthenticatorType.SMS)
            ...
            await store.save(updated, expected_version=record.version)
        ```
    """

    def __init__(
        self,
        resources: list[ResourceIdentifier],
        lock_strategy: ILockStrategy,
        *,
        timeout: float = 10.0,
        ttl: float = 30.0,
    ) -> None:
        consolidated: dict[tuple[str, str], ResourceIdentifier] = {}
        for res in resources:
            key = (res.resource_type, res.resource_id)
            if key not in consolidated or res.lock_mode == "write":
                consolidated[key] = res

        self._resources = sorted(consolidated.values())
        self._lock_strategy = lock_strategy
        self._timeout = timeout
        self._ttl = ttl
        self._acquired: list[tuple[ResourceIdentifier, str]] = []

    async def __aenter__(self) -> CriticalSection:
        """
        Acquire all locks in sorted order.

        Raises:
            LockAcquisitionError: If any lock cannot be acquired; locks taken
                so far are released first.
        """
        start = time.perf_counter()
        try:
            for resource in self._resources:
                token = await self._lock_strategy.acquire(
                    resource,
                    timeout=self._timeout,
                    ttl=self._ttl,
                )
                self._acquired.append((resource, token))
        except BaseException as exc:
            # Cancellation included: a half-acquired section must not leak locks
            failed_index = min(len(self._acquired), len(self._resources) - 1)
            await self._rollback()
            if isinstance(exc, LockAcquisitionError) or not isinstance(exc, Exception):
                raise
            raise LockAcquisitionError(
                self._resources[failed_index], self._timeout, reason=str(exc)
            ) from exc

        logger.debug(
            "Locks acquired",
            extra={
                "resources": [str(r) for r in self._resources],
                "duration_ms": (time.perf_counter() - start) * 1000,
            },
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self._rollback()

    async def _rollback(self) -> None:
        """Release acquired locks in reverse order (LIFO)."""
        failed = 0
        for resource, token in reversed(self._acquired):
            try:
                await self._lock_strategy.release(resource, token)
            except Exception:  # noqa: BLE001
                failed += 1
                logger.exception("Failed to release lock %s", resource)
        if failed:
            logger.warning(
                "Lock rollback incomplete: %d/%d releases failed",
                failed,
                len(self._acquired),
            )
        self._acquired.clear()
