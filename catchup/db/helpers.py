"""
Query helpers for the repository layer.

Each helper runs on the caller's connection when one is passed (so several
statements share a transaction) and otherwise checks one out of the pool.
psycopg errors surface as DatabaseError; connection-level failures are marked
recoverable so the generation job retries the user next cycle.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from catchup.db.pool import db_pool
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A query failed; ``operation`` names the helper that ran it."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _use_connection(
    connection: psycopg.AsyncConnection | None,
) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    if connection is not None:
        yield connection
        return
    async with db_pool.connection() as conn:
        yield conn


def _wrap(e: psycopg.Error, query: str, operation: str) -> DatabaseError:
    logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
    return DatabaseError(
        f"Query failed: {e}",
        operation=operation,
        recoverable=isinstance(e, psycopg.OperationalError),
    )


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Run a query and return its first row.

    Args:
        query: SQL with %s placeholders
        params: Query parameters
        connection: Existing connection, e.g. inside ``db_pool.transaction()``

    Returns:
        Row as a dict, or None when the query returns nothing
    """
    try:
        async with _use_connection(connection) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except psycopg.Error as e:
        raise _wrap(e, query, "fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Run a query and return every row as a dict."""
    try:
        async with _use_connection(connection) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _wrap(e, query, "fetch_all") from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    try:
        async with _use_connection(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap(e, query, "execute") from e


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a read when the connection drops.

    Only DatabaseErrors caused by psycopg.OperationalError are retried, with
    exponential backoff from ``base_delay``.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not isinstance(e.__cause__, psycopg.OperationalError) or attempt >= max_retries:
                        raise
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying database read",
                        operation=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
