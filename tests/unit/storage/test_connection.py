"""
Tests for ExpiringConnectionManager.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from upload_mover.core.errors import ConnectionRefreshError
from upload_mover.storage.connection import ExpiringConnectionManager, probe_pool
from upload_mover.storage.health import HealthStatus


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_pool(healthy: bool = True) -> AsyncMock:
    pool = AsyncMock()
    if healthy:
        pool.fetchval.return_value = 1
    else:
        pool.fetchval.side_effect = ConnectionResetError("connection closed")
    return pool


class CountingSupplier:
    """Returns a new pool per call, with a small delay to expose races."""

    def __init__(self, duration: float = 600.0):
        self.duration = duration
        self.pools: list[AsyncMock] = []
        self.fail_next = 0
        self.unhealthy_next = 0

    async def __call__(self):
        await asyncio.sleep(0.01)
        if self.fail_next:
            self.fail_next -= 1
            msg = "token generation failed"
            raise RuntimeError(msg)
        healthy = not self.unhealthy_next
        if self.unhealthy_next:
            self.unhealthy_next -= 1
        pool = make_pool(healthy)
        self.pools.append(pool)
        return pool, self.duration

    @property
    def calls(self) -> int:
        return len(self.pools)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def supplier():
    return CountingSupplier()


@pytest.fixture
def manager(supplier, clock):
    return ExpiringConnectionManager(supplier, queries_factory=MagicMock(name="queries"), clock=clock)


class TestProbe:
    """Tests for probe_pool()."""

    @pytest.mark.asyncio
    async def test_probe_healthy(self):
        pool = make_pool()
        assert await probe_pool(pool) is True
        pool.fetchval.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_probe_unhealthy(self):
        assert await probe_pool(make_pool(healthy=False)) is False


class TestExpiringConnectionManager:
    """Tests for connection refresh under expiry and concurrency."""

    @pytest.mark.asyncio
    async def test_connect_installs_pool_and_queries(self, manager, supplier, clock):
        await manager.connect()

        pool = await manager.get_connection()
        assert pool is supplier.pools[0]
        manager.queries_factory.assert_called_once_with(pool)
        assert manager.expires_at == clock.now + 600.0
        assert manager.refresh_count == 1

    @pytest.mark.asyncio
    async def test_connect_failure_raises(self, manager, supplier):
        supplier.fail_next = 1

        with pytest.raises(ConnectionRefreshError, match="token generation failed"):
            await manager.connect()

    @pytest.mark.asyncio
    async def test_reuses_pool_before_expiry(self, manager, supplier, clock):
        await manager.connect()
        clock.now += 599

        for _ in range(5):
            await manager.get_queries()

        assert supplier.calls == 1
        assert supplier.pools[0].fetchval.await_count == 6  # initial probe + 5 accesses

    @pytest.mark.asyncio
    async def test_refreshes_exactly_once_after_expiry(self, manager, supplier, clock):
        """Concurrent callers after expiry share a single refresh."""
        await manager.connect()
        old_pool = supplier.pools[0]
        clock.now += 600

        pools = await asyncio.gather(*(manager.get_connection() for _ in range(10)))

        assert supplier.calls == 2
        assert all(pool is supplier.pools[1] for pool in pools)
        old_pool.close.assert_awaited_once()
        assert manager.expires_at == clock.now + 600.0

    @pytest.mark.asyncio
    async def test_refreshes_when_probe_fails(self, manager, supplier):
        await manager.connect()
        supplier.pools[0].fetchval.side_effect = ConnectionResetError("gone")

        pool = await manager.get_connection()

        assert supplier.calls == 2
        assert pool is supplier.pools[1]

    @pytest.mark.asyncio
    async def test_refresh_failure_retried_on_next_access(self, manager, supplier, clock):
        await manager.connect()
        clock.now += 601
        supplier.fail_next = 1

        with pytest.raises(ConnectionRefreshError):
            await manager.get_queries()

        queries = await manager.get_queries()
        assert queries is manager.queries_factory.return_value
        assert supplier.calls == 2

    @pytest.mark.asyncio
    async def test_new_pool_failing_probe_is_not_installed(self, manager, supplier, clock):
        await manager.connect()
        clock.now += 601
        supplier.unhealthy_next = 1

        with pytest.raises(ConnectionRefreshError, match="failed probe"):
            await manager.get_connection()

        rejected = supplier.pools[1]
        rejected.close.assert_awaited_once()

        pool = await manager.get_connection()
        assert pool is supplier.pools[2]

    @pytest.mark.asyncio
    async def test_close_errors_are_logged(self, manager, supplier, clock):
        await manager.connect()
        supplier.pools[0].close.side_effect = OSError("already closed")
        clock.now += 601

        pool = await manager.get_connection()

        assert pool is supplier.pools[1]

    @pytest.mark.asyncio
    async def test_context_manager_closes_pool(self, supplier, clock):
        async with ExpiringConnectionManager(supplier, MagicMock(), clock=clock) as manager:
            await manager.get_connection()

        supplier.pools[0].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check(self, manager, clock):
        result = await manager.health_check()
        assert result.status is HealthStatus.UNHEALTHY

        await manager.connect()
        clock.now += 100
        result = await manager.health_check()

        assert result.is_healthy is True
        assert result.details["auth_expires_in_seconds"] == 500.0
        assert result.to_dict()["status"] == "healthy"
