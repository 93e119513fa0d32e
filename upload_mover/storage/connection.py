"""
Connection management for the relational metadata store.

Relational credentials expire (RDS IAM auth tokens live 15 minutes), so
the pool is treated as valid only until its auth expires. Every access
goes through one lock: while a refresh is in progress, other callers
wait and then reuse the freshly installed pool instead of refreshing
again.

Usage:
    >>> manager = ExpiringConnectionManager(rds_connection_supplier(config), PostgresQueries)
    >>> await manager.connect()
    >>> queries = await manager.get_queries()
    >>> await queries.get_organization(1)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from upload_mover.core.errors import ConnectionRefreshError
from upload_mover.core.logger import get_logger
from upload_mover.monitoring.metrics import CONNECTION_REFRESHES
from upload_mover.storage.health import HealthCheckResult, HealthStatus
from upload_mover.storage.interfaces import OrganizationQueries

logger = get_logger(__name__)

# Returns a new pool and how long its auth stays valid, in seconds
ConnectionSupplier = Callable[[], Awaitable[tuple[Any, float]]]
QueriesFactory = Callable[[Any], OrganizationQueries]


async def probe_pool(pool: Any) -> bool:
    """Cheap liveness probe; any failure means the pool is unusable."""
    try:
        await pool.fetchval("SELECT 1")
    except Exception as e:
        logger.warning(f"Connection probe failed: {e}")
        return False
    return True


class ExpiringConnectionManager:
    """
    Holds a connection pool whose authentication expires.

    Attributes:
        supplier: Opens a new pool, returning it with its auth duration
        queries_factory: Builds the query facade bound to a pool
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        supplier: ConnectionSupplier,
        queries_factory: QueriesFactory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.supplier = supplier
        self.queries_factory = queries_factory
        self.clock = clock
        self._pool: Any | None = None
        self._queries: OrganizationQueries | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    async def connect(self) -> None:
        """
        Open the initial pool.

        Raises:
            ConnectionRefreshError: If the pool cannot be opened; fatal at setup
        """
        async with self._lock:
            if self._pool is None:
                await self._refresh()

    async def get_connection(self) -> Any:
        """Current valid pool, refreshing it first if needed."""
        async with self._lock:
            await self._check_connection()
            return self._pool

    async def get_queries(self) -> OrganizationQueries:
        """Query facade over the current valid pool."""
        async with self._lock:
            await self._check_connection()
            return self._queries

    async def close(self) -> None:
        async with self._lock:
            await self._close_pool()
            self._expires_at = 0.0

    async def health_check(self) -> HealthCheckResult:
        start = time.perf_counter()
        async with self._lock:
            pool = self._pool
            remaining = self._expires_at - self.clock()

        if pool is None:
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=0,
                message="No connection established",
            )

        healthy = await probe_pool(pool)
        elapsed_ms = (time.perf_counter() - start) * 1000
        return HealthCheckResult(
            status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
            latency_ms=elapsed_ms,
            message="Connection is valid" if healthy else "Connection is invalid",
            details={"auth_expires_in_seconds": round(remaining, 1)},
        )

    async def _check_connection(self) -> None:
        """Reuse the pool while its auth is valid and it answers the probe."""
        if self._pool is not None and self.clock() < self._expires_at:
            if await probe_pool(self._pool):
                return
            logger.info("Connection failed probe, refreshing")
        else:
            logger.info("Connection auth expired, refreshing")
        await self._refresh()

    async def _refresh(self) -> None:
        await self._close_pool()

        try:
            pool, auth_duration = await self.supplier()
        except Exception as e:
            raise ConnectionRefreshError(f"Failed to open connection pool: {e}") from e

        if not await probe_pool(pool):
            await self._safe_close(pool)
            msg = "New connection pool failed probe"
            raise ConnectionRefreshError(msg)

        self._pool = pool
        self._queries = self.queries_factory(pool)
        self._expires_at = self.clock() + auth_duration
        self.refresh_count += 1
        CONNECTION_REFRESHES.inc()
        logger.info(f"Connection pool refreshed, auth valid for {auth_duration:.0f}s")

    async def _close_pool(self) -> None:
        pool, self._pool, self._queries = self._pool, None, None
        if pool is not None:
            await self._safe_close(pool)

    @staticmethod
    async def _safe_close(pool: Any) -> None:
        try:
            await pool.close()
        except Exception as e:
            logger.error(f"Error closing connection pool: {e}")

    async def __aenter__(self) -> "ExpiringConnectionManager":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
