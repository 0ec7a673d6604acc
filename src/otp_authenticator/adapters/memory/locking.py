"""InMemoryLockStrategy — single-process implementation of ILockStrategy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import uuid4

from ...exceptions import LockAcquisitionError
from ...ports.locking import ILockStrategy

if TYPE_CHECKING:
    from ...primitives.locking import ResourceIdentifier

logger = logging.getLogger("otp_authenticator.locking")


@dataclass
class _LockState:
    """State for a single resource lock."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    token: str | None = None
    waiters: int = 0


class InMemoryLockStrategy(ILockStrategy):
    """
    In-memory lock strategy, one FIFO lock per resource.

    Waiters are served in arrival order; the number of waiters per resource
    is bounded so a hot record applies backpressure instead of queueing
    without limit. Suitable for tests and single-process hosts only.
    """

    def __init__(self, max_waiters: int = 100) -> None:
        self._locks: dict[tuple[str, str], _LockState] = {}
        self.max_waiters = max_waiters

    async def acquire(
        self,
        resource: ResourceIdentifier,
        *,
        timeout: float = 10.0,
        ttl: float = 30.0,  # noqa: ARG002
    ) -> str:
        key = (resource.resource_type, resource.resource_id)
        state = self._locks.setdefault(key, _LockState())

        if state.waiters >= self.max_waiters:
            raise LockAcquisitionError(
                resource,
                timeout,
                reason=f"lock queue full ({state.waiters}/{self.max_waiters})",
            )

        state.waiters += 1
        try:
            await asyncio.wait_for(state.lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as err:
            logger.warning("Lock acquisition on %s timed out after %.1fs", resource, timeout)
            raise LockAcquisitionError(resource, timeout, reason="timed out") from err
        finally:
            state.waiters -= 1
            self._discard_if_idle(key, state)

        state.token = str(uuid4())
        logger.debug("Lock acquired: %s", resource)
        return state.token

    async def release(
        self,
        resource: ResourceIdentifier,
        token: str,
    ) -> None:
        key = (resource.resource_type, resource.resource_id)
        state = self._locks.get(key)
        if state is None or state.token != token:
            logger.warning("Attempted to release invalid or expired lock: %s", resource)
            return

        state.token = None
        state.lock.release()
        self._discard_if_idle(key, state)
        logger.debug("Lock released: %s", resource)

    async def health_check(self) -> bool:
        """Always healthy: there is no external service to ping."""
        return True

    def _discard_if_idle(self, key: tuple[str, str], state: _LockState) -> None:
        # Idle entries are dropped so the dict does not grow with every user
        if state.waiters == 0 and not state.lock.locked():
            self._locks.pop(key, None)

    # ── Test helpers ─────────────────────────────────────────────

    def is_locked(self, resource: ResourceIdentifier) -> bool:
        state = self._locks.get((resource.resource_type, resource.resource_id))
        return state is not None and state.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
