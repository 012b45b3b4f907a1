"""
Pools, connection checkout and transactions.

A *pool* is an SQLAlchemy ``AsyncEngine`` (``postgresql+asyncpg``) and a
*connection* an ``AsyncConnection``. Statements are sent with
``exec_driver_sql`` so the ``$N`` placeholders produced by the where
compiler reach asyncpg unchanged.

Usage::

    set_default_pool(create_pool(PoolConfig(dsn="postgresql://...")))

    rows = await query("SELECT 1 AS one")

    async def work(conn):
        await QueryTestRecord({"email": "a@example.com"}, conn_or_pool=conn).save()

    await transaction(work)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from typing import Any, TypeVar, Union

from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from .constants import STATEMENT_TIMEOUT_SQLSTATE
from .exceptions import (
    AutoPrunedUnusablePoolConnectionError,
    FailedToFindUsablePoolConnectionError,
    ImplicitNestedTransactionError,
    MissingRequiredArgError,
    NoPoolSetError,
    StatementTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
ConnOrPool = Union[AsyncConnection, AsyncEngine]

DEFAULT_POOL = "default"
DEFAULT_MAX_ATTEMPTS = 100


# ---------------------------------------------------------------------------
# Pool registry
# ---------------------------------------------------------------------------


class PoolRegistry:
    """Named pools with explicit registration and teardown."""

    def __init__(self) -> None:
        self._pools: dict[str, AsyncEngine] = {}

    def set(self, pool: AsyncEngine, name: str = DEFAULT_POOL) -> None:
        self._pools[name] = pool

    def get(self, name: str = DEFAULT_POOL) -> AsyncEngine:
        try:
            return self._pools[name]
        except KeyError:
            raise NoPoolSetError(name) from None

    def has(self, name: str = DEFAULT_POOL) -> bool:
        return name in self._pools

    def clear(self) -> None:
        self._pools.clear()

    async def dispose(self) -> None:
        """Dispose every registered pool and forget them."""
        pools, self._pools = self._pools, {}
        for pool in pools.values():
            await pool.dispose()


pools = PoolRegistry()


def set_default_pool(pool: AsyncEngine) -> None:
    pools.set(pool)


def get_default_pool() -> AsyncEngine:
    return pools.get()


def split_conn_or_pool(
    conn_or_pool: ConnOrPool | None,
) -> tuple[AsyncConnection | None, AsyncEngine | None]:
    if conn_or_pool is None:
        return None, None
    if isinstance(conn_or_pool, AsyncConnection):
        return conn_or_pool, None
    if isinstance(conn_or_pool, AsyncEngine):
        return None, conn_or_pool
    raise TypeError(
        f"Expected an AsyncConnection or AsyncEngine, got {type(conn_or_pool).__name__}"
    )


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def sqlstate_of(exc: BaseException) -> str | None:
    """Find a SQLSTATE on the error, its DBAPI original or its causes."""
    current: BaseException | None = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        state = getattr(current, "sqlstate", None) or getattr(current, "pgcode", None)
        if isinstance(state, str):
            return state
        current = getattr(current, "orig", None) or current.__cause__
    return None


def is_statement_timeout(exc: BaseException) -> bool:
    return sqlstate_of(exc) == STATEMENT_TIMEOUT_SQLSTATE


@contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise statement timeouts as ``StatementTimeoutError``."""
    try:
        yield
    except StatementTimeoutError:
        raise
    except Exception as exc:
        if is_statement_timeout(exc):
            raise StatementTimeoutError() from exc
        raise


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


async def execute(
    conn: AsyncConnection, query: str, values: Sequence[Any] = ()
) -> CursorResult[Any]:
    logger.debug("QUERY %s VALUES %r", query, list(values))
    return await conn.exec_driver_sql(query, tuple(values))


async def release(conn: AsyncConnection, *, destroy: bool = False) -> None:
    """Return ``conn`` to its pool, or discard it when ``destroy`` is set."""
    if destroy:
        await conn.invalidate()
    await conn.close()


async def _unusable_reason(conn: AsyncConnection) -> str | None:
    raw = await conn.get_raw_connection()
    driver = raw.driver_connection
    if driver is None or driver.is_closed():
        return "connection is closed"
    if driver.is_in_transaction():
        return "connection was checked out with an open transaction"
    return None


async def get_usable_connection(
    pool: AsyncEngine, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS
) -> AsyncConnection:
    """
    Check out a connection, discarding ones that are closed or were left
    inside a transaction.
    """
    for attempt in range(1, max_attempts + 1):
        conn = await pool.connect()
        try:
            reason = await _unusable_reason(conn)
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or type(exc).__name__
        if reason is None:
            return conn

        logger.error(
            "%s (attempt %d of %d)",
            AutoPrunedUnusablePoolConnectionError(reason),
            attempt,
            max_attempts,
        )
        await release(conn, destroy=True)

    raise FailedToFindUsablePoolConnectionError(max_attempts)


@asynccontextmanager
async def checkout(
    conn: AsyncConnection | None = None,
    pool: AsyncEngine | None = None,
    *,
    destroy: bool = False,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield ``conn`` when given, otherwise a pool connection.

    Pool connections are committed on success and released on every path;
    ones that saw a database error are discarded.
    """
    if conn is not None:
        with translate_errors():
            yield conn
        return

    owned = await get_usable_connection(pool or get_default_pool())
    try:
        with translate_errors():
            yield owned
            if owned.in_transaction():
                await owned.commit()
    except DBAPIError:
        destroy = True
        raise
    finally:
        await release(owned, destroy=destroy)


async def connected(
    callback: Callable[[AsyncConnection], Awaitable[T]] | None = None,
    *,
    pool: AsyncEngine | None = None,
    auto_destroy_conn: bool = False,
) -> T:
    """Run ``callback`` with a checked-out connection, then release it."""
    if callback is None:
        raise MissingRequiredArgError("callback")
    async with checkout(pool=pool, destroy=auto_destroy_conn) as conn:
        return await callback(conn)


async def transaction(
    callback: Callable[[AsyncConnection], Awaitable[T]] | None = None,
    *,
    conn: AsyncConnection | None = None,
    pool: AsyncEngine | None = None,
    allow_nested: bool = False,
    auto_destroy_conn: bool = False,
) -> T:
    """
    Run ``callback`` inside BEGIN / COMMIT, rolling back on any error.

    With ``conn`` already in a transaction, raises
    ``ImplicitNestedTransactionError`` unless ``allow_nested`` is set, in
    which case the callback joins the outer transaction.
    """
    if callback is None:
        raise MissingRequiredArgError("callback")

    owns_conn = conn is None
    if conn is None:
        conn = await get_usable_connection(pool or get_default_pool())

    joined = conn.in_transaction()
    destroy = auto_destroy_conn
    try:
        if joined and not allow_nested:
            raise ImplicitNestedTransactionError()
        with translate_errors():
            if not joined:
                await conn.begin()
            try:
                result = await callback(conn)
                if not joined:
                    await conn.commit()
            except BaseException:
                if not joined and conn.in_transaction():
                    await conn.rollback()
                raise
        return result
    except DBAPIError:
        destroy = True
        raise
    finally:
        if owns_conn or auto_destroy_conn:
            await release(conn, destroy=destroy)


async def query(
    text: str,
    values: Sequence[Any] | None = None,
    *,
    pool: AsyncEngine | None = None,
    auto_destroy_conn: bool = False,
) -> list[RowMapping]:
    """Run one statement on a pool connection and return its rows."""

    async def run(conn: AsyncConnection) -> list[RowMapping]:
        result = await execute(conn, text, values or ())
        if not result.returns_rows:
            return []
        return list(result.mappings().all())

    return await connected(run, pool=pool, auto_destroy_conn=auto_destroy_conn)
