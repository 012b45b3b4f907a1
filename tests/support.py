"""Record types and mocked pools, connections and results for unit tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from supple_sql import NOW, FieldSpec, FieldType, Record


class QueryTestRecord(Record):
    table = "query_test_records"
    fields = {
        "id": FieldSpec(type=FieldType.SERIAL, primary_key=True),
        "email": {"type": "text", "nullable": False},
        "aNumber": {"type": "integer"},
        "aFlag": {"type": "boolean"},
        "optionalAt": {"type": "timestamp with time zone"},
        "createdAt": {"type": "timestamp with time zone", "default": NOW},
        "secret": {"type": "text"},
    }
    private_fields = ("secret",)


class MembershipRecord(Record):
    table = "memberships"
    fields = {
        "groupId": {"type": "integer", "primary_key": True},
        "userId": {"type": "integer", "primary_key": True},
        "role": {"type": "text"},
    }


def make_result(
    rows: Sequence[Mapping[str, Any]] = (),
    *,
    scalar: Any = None,
    rowcount: int | None = None,
) -> MagicMock:
    """A stand-in for ``CursorResult`` over dict rows."""
    rows = list(rows)
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    result.mappings.return_value.first.return_value = rows[0] if rows else None
    result.all.return_value = [tuple(row.values()) for row in rows]
    result.scalar_one.return_value = scalar
    result.rowcount = len(rows) if rowcount is None else rowcount
    result.returns_rows = True
    return result


def make_driver(*, in_transaction: bool = False, closed: bool = False) -> MagicMock:
    """A stand-in for the asyncpg connection under an ``AsyncConnection``."""
    driver = MagicMock()
    driver.is_closed.return_value = closed
    driver.is_in_transaction.return_value = in_transaction
    driver.execute = AsyncMock()
    cursor = MagicMock()
    cursor.fetch = AsyncMock(return_value=[])
    driver.cursor = AsyncMock(return_value=cursor)

    tx = MagicMock()
    tx.start = AsyncMock()
    tx.commit = AsyncMock()
    tx.rollback = AsyncMock()
    driver.transaction.return_value = tx
    return driver


def make_conn(
    *results: Any,
    in_transaction: bool = False,
    driver: MagicMock | None = None,
) -> AsyncMock:
    """
    An ``AsyncConnection`` mock. Each ``exec_driver_sql`` call returns the
    next of ``results`` (rows lists are wrapped with ``make_result``).
    """
    conn = AsyncMock(spec=AsyncConnection)
    conn.in_transaction = MagicMock(return_value=in_transaction)
    conn.begin = AsyncMock()

    prepared = [
        r if isinstance(r, MagicMock) else make_result(r) for r in results
    ] or [make_result()]
    if len(prepared) == 1:
        conn.exec_driver_sql = AsyncMock(return_value=prepared[0])
    else:
        conn.exec_driver_sql = AsyncMock(side_effect=prepared)

    raw = MagicMock()
    raw.driver_connection = driver or make_driver()
    conn.get_raw_connection = AsyncMock(return_value=raw)
    return conn


def make_pool(*conns: AsyncMock) -> AsyncMock:
    """An ``AsyncEngine`` mock handing out ``conns`` in order."""
    pool = AsyncMock(spec=AsyncEngine)
    queue = list(conns)

    async def _connect() -> AsyncMock:
        return queue.pop(0)

    pool.connect = MagicMock(side_effect=lambda: _connect())
    return pool


def sent_sql(conn: AsyncMock, call: int = -1) -> tuple[str, tuple[Any, ...]]:
    """The ``(query, values)`` of one ``exec_driver_sql`` call."""
    args = conn.exec_driver_sql.await_args_list[call].args
    return args[0], args[1]

