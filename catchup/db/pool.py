"""
PostgreSQL connection pool for the API process and the generation worker.

One AsyncConnectionPool per process. Connections come back as dict rows in
autocommit mode; suggestion batches and lifecycle transitions open explicit
transactions through ``db_pool.transaction()``.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from catchup.config import settings
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
HEALTHY_MAX_UTILIZATION_PERCENT = 90
HEALTHY_MAX_PING_MS = 100


class DatabasePoolManager:
    """Owns the process-wide pool: startup, shutdown, checkout and health."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        """Open the pool and verify one round trip before serving work."""
        if self._initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = settings.get_db_pool_config()
        logger.info(
            "Opening database pool",
            environment=settings.environment,
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
        )

        self.pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )
        try:
            await self.pool.open(wait=True)
            self._initialized = True
            await self._ping()
        except Exception as e:
            logger.error("Database pool failed to open", error=str(e), error_type=type(e).__name__)
            self._initialized = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready")

    async def _discard_pool(self) -> None:
        if self.pool is None:
            return
        try:
            await self.pool.close()
        except Exception as e:
            logger.warning("Error closing pool after failed init", error=str(e))
        self.pool = None

    @staticmethod
    async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(f"catchup-{settings.environment}"))
        )
        # Stored instants are compared in UTC
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '60s'")

    async def _ping(self) -> float:
        """Round-trip ``SELECT 1``; returns the latency in milliseconds."""
        started = time.time()
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database ping returned an unexpected result")
        return (time.time() - started) * 1000

    async def close(self) -> None:
        """Close the pool; safe to call more than once."""
        if not self._initialized or self._closed:
            return

        logger.info("Closing database pool")
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
        finally:
            self._initialized = False
            self._closed = True

    def _require_open(self) -> AsyncConnectionPool:
        if self._closed:
            raise RuntimeError("Database pool is closed")
        if not self._initialized or self.pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        return self.pool

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Check out an autocommit connection."""
        pool = self._require_open()
        async with pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Check out a connection inside one transaction.

        Usage:
            async with db_pool.transaction() as conn:
                await execute_query("INSERT ...", params, connection=conn)
                # commit on exit, rollback on exception
        """
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    def _pool_stats(self) -> dict[str, Any]:
        stats = self.pool.get_stats() if self.pool else {}
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        return {
            "pool_size": size,
            "pool_available": available,
            "pool_utilization_percent": round((size - available) / size * 100, 2) if size else 0.0,
            "requests_waiting": stats.get("requests_waiting", 0),
        }

    async def health_check(self) -> dict[str, Any]:
        """Readiness of the pool plus utilisation figures for /readyz."""
        if self._closed:
            return {"healthy": False, "error": "Pool is closed", "service": "database_pool"}
        if not self._initialized:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        try:
            ping_ms = await self._ping()
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        pool_stats = self._pool_stats()
        return {
            "healthy": pool_stats["pool_utilization_percent"] < HEALTHY_MAX_UTILIZATION_PERCENT
            and ping_ms < HEALTHY_MAX_PING_MS,
            "service": "database_pool",
            "connection_time_ms": round(ping_ms, 2),
            "pool_stats": pool_stats,
        }


db_pool = DatabasePoolManager()
