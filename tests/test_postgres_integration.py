"""
Integration tests against a real PostgreSQL server.

Set ``SUPPLE_SQL_TEST_DSN`` (e.g. ``postgresql://localhost/test``) to run.
"""

from __future__ import annotations

import os

import pytest

from supple_sql import (
    NOT_NULL,
    NOW,
    FieldSpec,
    FieldType,
    PoolConfig,
    Record,
    StatementTimeoutError,
    all_,
    connected,
    create_pool,
    like,
    or_,
    query,
    transaction,
)

DSN = os.environ.get("SUPPLE_SQL_TEST_DSN")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not DSN, reason="SUPPLE_SQL_TEST_DSN is not set"),
]

TABLE = "supple_test_query_test_records"


class QueryTestRecord(Record):
    table = TABLE
    fields = {
        "id": FieldSpec(type=FieldType.SERIAL, primary_key=True),
        "email": {"type": "text", "nullable": False},
        "displayName": {"type": "text", "nullable": False},
        "aNumber": {"type": "integer"},
        "aFlag": {"type": "boolean"},
        "createdAt": {"type": "timestamp with time zone", "default": NOW},
        "optionalAt": {"type": "timestamp with time zone"},
    }
    private_fields = ("aFlag",)


@pytest.fixture
async def pool():
    engine = create_pool(
        PoolConfig(dsn=DSN, statement_timeout_ms=10000, pool_size=5)
    )

    async def setup(conn):
        await conn.exec_driver_sql(f"DROP TABLE IF EXISTS {TABLE}")
        await conn.exec_driver_sql(
            f"""
            CREATE TABLE {TABLE} (
                id SERIAL PRIMARY KEY,
                email TEXT NOT NULL,
                display_name TEXT NOT NULL,
                a_number INTEGER,
                a_flag BOOL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                optional_at TIMESTAMPTZ
            )
            """
        )
        # 200 groups of three rows: a_flag NULL / true / false per group.
        await conn.exec_driver_sql(
            f"""
            INSERT INTO {TABLE} (email, display_name, a_number, a_flag, optional_at)
            SELECT
                'query-test-' || b || '-' || v || '@example.com',
                'Display Name ' || b || ', Variation ' || v,
                b,
                (ARRAY[NULL, true, false]::bool[])[v + 1],
                CASE WHEN v = 0 THEN NULL ELSE NOW() END
            FROM generate_series(0, 199) AS b, generate_series(0, 2) AS v
            ORDER BY b, v
            """
        )

    await connected(setup, pool=engine)
    yield engine
    await connected(
        lambda conn: conn.exec_driver_sql(f"DROP TABLE IF EXISTS {TABLE}"),
        pool=engine,
    )
    await engine.dispose()


def id_one(pool):
    return QueryTestRecord.query({"id": 1}, pool, returns="id")


# -- RecordQuery -------------------------------------------------------------


async def test_list_value_matches_each_element(pool):
    q = await QueryTestRecord.query({"aNumber": [0, 1]}, pool).run()
    assert len(q) == 6
    assert {r.aNumber for r in q} == {0, 1}


async def test_or_as_value_with_subquery(pool):
    q = await QueryTestRecord.query(
        {"id": or_(all_(id_one(pool)), like("%5"))}, pool
    ).run()
    ids = [r.id for r in q]
    assert len(ids) == 61
    assert all(i == 1 or i % 5 == 0 for i in ids)

    top_level = await QueryTestRecord.query(
        or_({"id": all_(id_one(pool))}, {"id": like("%5")}), pool
    ).run()
    assert top_level.data() == q.data()


async def test_order_by_direction(pool):
    wheres = {"aNumber": 100, "aFlag": NOT_NULL}
    ascending = await QueryTestRecord.query(wheres, pool, output="object").order_by(
        "aFlag"
    ).run()
    assert [row["aFlag"] for row in ascending] == [False, True]

    descending = await QueryTestRecord.query(wheres, pool, output="object").order_by(
        ("aFlag", "desc")
    ).run()
    assert [row["aFlag"] for row in descending] == [True, False]


async def test_null_and_not_null(pool):
    assert await QueryTestRecord.query({"aFlag": None}, pool).count() == 200
    assert await QueryTestRecord.query({"aFlag": NOT_NULL}, pool).count() == 400


async def test_count_respects_limit(pool):
    assert await QueryTestRecord.query({"aNumber": [0, 1]}, pool).limit(4).count() == 4


async def test_returns_value(pool):
    q = await QueryTestRecord.query({"aNumber": 7}, pool, returns="email").run()
    assert q.rows == [
        "query-test-7-0@example.com",
        "query-test-7-1@example.com",
        "query-test-7-2@example.com",
    ]


async def test_stream(pool):
    seen = 0
    async with QueryTestRecord.query({"aNumber": [0, 1, 2]}, pool, stream=True) as q:
        async for record in q:
            assert record.is_loaded
            seen += 1
    assert seen == 9


# -- Record ------------------------------------------------------------------


async def test_save_load_delete(pool):
    record = QueryTestRecord(
        email="new@example.com", displayName="New", aNumber=1000, conn_or_pool=pool
    )
    assert await record.save()
    assert record.id is not None
    assert record.createdAt is not None

    record.displayName = "Renamed"
    assert await record.save()

    loaded = await QueryTestRecord.get_by_primary_key(record.id, pool)
    assert loaded is not None
    assert loaded.displayName == "Renamed"

    assert await loaded.delete()
    assert await QueryTestRecord.find_one(record.id, pool) is None


async def test_load_with_multiple_matches_warns(pool):
    record = QueryTestRecord(aNumber=3, conn_or_pool=pool)
    assert await record.load() is False
    assert record.warnings


# -- Transactions and timeouts -----------------------------------------------


async def test_transaction_rolls_back(pool):
    async def work(conn):
        await QueryTestRecord(
            email="tx@example.com", displayName="Tx", conn_or_pool=conn
        ).save()
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        await transaction(work, pool=pool)

    assert await QueryTestRecord.query({"email": "tx@example.com"}, pool).count() == 0


async def test_statement_timeout(pool):
    async def slow(conn):
        await conn.exec_driver_sql("SET statement_timeout = 50")
        await conn.exec_driver_sql("SELECT pg_sleep(1)")

    with pytest.raises(StatementTimeoutError):
        await connected(slow, pool=pool)

    rows = await query("SELECT 1 AS one", pool=pool)
    assert [dict(row) for row in rows] == [{"one": 1}]
