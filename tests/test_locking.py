"""Tests for CriticalSection and InMemoryLockStrategy."""

from __future__ import annotations

import asyncio
import logging

import pytest

from otp_authenticator import (
    CriticalSection,
    ILockStrategy,
    InMemoryLockStrategy,
    ResourceIdentifier,
)
from otp_authenticator.exceptions import LockAcquisitionError


class RecordingLockStrategy:
    """Lock strategy that records calls and can fail on one resource."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.acquired: list[ResourceIdentifier] = []
        self.released: list[ResourceIdentifier] = []

    async def acquire(self, resource, *, timeout=10.0, ttl=30.0) -> str:
        if resource.resource_id == self.fail_on:
            raise RuntimeError("backend down")
        self.acquired.append(resource)
        return f"token-{resource.resource_id}"

    async def release(self, resource, token) -> None:
        self.released.append(resource)

    async def health_check(self) -> bool:
        return True


class TestResourceIdentifier:
    def test_sorts_by_type_then_id(self) -> None:
        a = ResourceIdentifier("Authenticator", "a")
        b = ResourceIdentifier("Authenticator", "b")
        assert sorted([b, a]) == [a, b]

    def test_str(self) -> None:
        assert str(ResourceIdentifier("Authenticator", "u:sms")) == "Authenticator:u:sms"
        assert (
            str(ResourceIdentifier("Authenticator", "u:sms", lock_mode="read"))
            == "Authenticator:u:sms:read"
        )


class TestCriticalSection:
    @pytest.mark.asyncio
    async def test_sorted_deduplicated_acquisition(self) -> None:
        strategy = RecordingLockStrategy()
        resources = [
            ResourceIdentifier("Authenticator", "b"),
            ResourceIdentifier("Authenticator", "a", lock_mode="read"),
            ResourceIdentifier("Authenticator", "a"),
        ]

        async with CriticalSection(resources, strategy):
            assert [r.resource_id for r in strategy.acquired] == ["a", "b"]
            assert strategy.acquired[0].lock_mode == "write"
            assert strategy.released == []

        assert [r.resource_id for r in strategy.released] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_releases_on_body_error(self) -> None:
        strategy = RecordingLockStrategy()

        with pytest.raises(ValueError):
            async with CriticalSection(
                [ResourceIdentifier("Authenticator", "a")], strategy
            ):
                raise ValueError("boom")

        assert len(strategy.released) == 1

    @pytest.mark.asyncio
    async def test_rolls_back_partial_acquisition(self) -> None:
        strategy = RecordingLockStrategy(fail_on="b")
        resources = [
            ResourceIdentifier("Authenticator", "a"),
            ResourceIdentifier("Authenticator", "b"),
        ]

        with pytest.raises(LockAcquisitionError) as exc_info:
            async with CriticalSection(resources, strategy):
                pytest.fail("body must not run")

        assert exc_info.value.resource.resource_id == "b"
        assert exc_info.value.reason == "backend down"
        assert [r.resource_id for r in strategy.released] == ["a"]


class TestInMemoryLockStrategy:
    def test_satisfies_port(self) -> None:
        assert isinstance(InMemoryLockStrategy(), ILockStrategy)

    @pytest.mark.asyncio
    async def test_acquire_release(self) -> None:
        strategy = InMemoryLockStrategy()
        resource = ResourceIdentifier("Authenticator", "u:totp")

        token = await strategy.acquire(resource)
        assert strategy.is_locked(resource)

        await strategy.release(resource, token)
        assert not strategy.is_locked(resource)
        assert len(strategy) == 0

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        strategy = InMemoryLockStrategy()
        resource = ResourceIdentifier("Authenticator", "u:totp")
        await strategy.acquire(resource)

        with pytest.raises(LockAcquisitionError, match="timed out"):
            await strategy.acquire(resource, timeout=0.01)

    @pytest.mark.asyncio
    async def test_waiter_gets_lock_after_release(self) -> None:
        strategy = InMemoryLockStrategy()
        resource = ResourceIdentifier("Authenticator", "u:totp")
        token = await strategy.acquire(resource)

        waiter = asyncio.create_task(strategy.acquire(resource, timeout=1.0))
        await asyncio.sleep(0)
        assert not waiter.done()

        await strategy.release(resource, token)
        second = await waiter
        assert second != token
        await strategy.release(resource, second)
        assert len(strategy) == 0

    @pytest.mark.asyncio
    async def test_queue_full(self) -> None:
        strategy = InMemoryLockStrategy(max_waiters=1)
        resource = ResourceIdentifier("Authenticator", "u:totp")
        await strategy.acquire(resource)

        waiter = asyncio.create_task(strategy.acquire(resource, timeout=1.0))
        await asyncio.sleep(0)
        try:
            with pytest.raises(LockAcquisitionError, match="queue full"):
                await strategy.acquire(resource, timeout=1.0)
        finally:
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

    @pytest.mark.asyncio
    async def test_wrong_token_is_ignored(self, caplog) -> None:
        strategy = InMemoryLockStrategy()
        resource = ResourceIdentifier("Authenticator", "u:totp")
        await strategy.acquire(resource)

        with caplog.at_level(logging.WARNING, logger="otp_authenticator.locking"):
            await strategy.release(resource, "not-the-token")

        assert strategy.is_locked(resource)
        assert "invalid or expired lock" in caplog.text

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        assert await InMemoryLockStrategy().health_check() is True
