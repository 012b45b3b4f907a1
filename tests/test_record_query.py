"""Tests for RecordQuery: SQL generation, options and execution."""

from __future__ import annotations

import pytest
from support import (
    QueryTestRecord,
    make_conn,
    make_driver,
    make_pool,
    make_result,
    sent_sql,
)

from supple_sql import (
    NOT_NULL,
    AsyncIterationUnavailableError,
    FieldNotFoundError,
    IncompatibleOutputSpecifiedError,
    InvalidOptionCombinationError,
    InvalidOutputTypeError,
    OutputType,
    QueryNotLoadedIterationError,
    RecordQuery,
    RecordTypeRequiredError,
    UnavailableInStreamModeError,
    set_default_pool,
)

ROWS = [
    {"id": 1, "email": "a@example.com", "a_number": 0, "a_flag": None, "secret": "s1"},
    {"id": 2, "email": "b@example.com", "a_number": 0, "a_flag": True, "secret": "s2"},
]


def sql_of(query: RecordQuery, **kwargs) -> tuple[str, list]:
    rendered = query.get_sql(**kwargs)
    return rendered.query, rendered.values


# -- Construction ------------------------------------------------------------


def test_record_type_is_required():
    with pytest.raises(RecordTypeRequiredError):
        RecordQuery(None)
    with pytest.raises(RecordTypeRequiredError):
        RecordQuery(dict)


def test_unknown_output_type_raises():
    with pytest.raises(InvalidOutputTypeError):
        RecordQuery(QueryTestRecord, output="table")


# -- SQL generation ----------------------------------------------------------


def test_default_select_orders_by_primary_key():
    assert sql_of(RecordQuery(QueryTestRecord)) == (
        'SELECT * FROM "query_test_records" ORDER BY "id" ASC',
        [],
    )


def test_where_limit_offset():
    q = QueryTestRecord.query({"aNumber": [0, 1]}).limit(10).offset(5)
    assert sql_of(q) == (
        'SELECT * FROM "query_test_records" WHERE "a_number" IN ($1, $2) '
        'ORDER BY "id" ASC LIMIT 10 OFFSET 5',
        [0, 1],
    )


def test_repeated_where_calls_are_anded():
    q = QueryTestRecord.query({"aNumber": 1}).where({"aFlag": NOT_NULL})
    assert sql_of(q)[0] == (
        'SELECT * FROM "query_test_records" '
        'WHERE "a_number" = $1 AND "a_flag" IS NOT NULL ORDER BY "id" ASC'
    )


def test_order_by_forms():
    q = QueryTestRecord.query().order_by("-aNumber", ("aFlag", "desc"), "id")
    assert sql_of(q)[0] == (
        'SELECT * FROM "query_test_records" '
        'ORDER BY "a_number" DESC, "a_flag" DESC, "id" ASC'
    )


def test_returns_one_key_selects_value():
    q = QueryTestRecord.query(returns="aNumber")
    assert q._output is OutputType.VALUE
    assert sql_of(q)[0] == (
        'SELECT "a_number" AS "aNumber" FROM "query_test_records" ORDER BY "id" ASC'
    )


def test_returns_several_keys_selects_object():
    q = QueryTestRecord.query(returns=["id", "aNumber"])
    assert q._output is OutputType.OBJECT
    assert sql_of(q)[0].startswith('SELECT "id", "a_number" AS "aNumber" FROM')


def test_object_output_selects_every_field():
    q = QueryTestRecord.query(output="object")
    assert sql_of(q)[0] == (
        'SELECT "id", "email", "a_number" AS "aNumber", "a_flag" AS "aFlag", '
        '"optional_at" AS "optionalAt", "created_at" AS "createdAt", "secret" '
        'FROM "query_test_records" ORDER BY "id" ASC'
    )


def test_subquery_without_limit_skips_order_by():
    q = QueryTestRecord.query({"id": 1}, returns="id")
    assert sql_of(q, is_subquery=True, bind_params_used=2) == (
        'SELECT "id" FROM "query_test_records" WHERE "id" = $3',
        [1],
    )


def test_subquery_with_limit_keeps_order_by():
    q = QueryTestRecord.query(returns="id").limit(1)
    assert sql_of(q, is_subquery=True)[0] == (
        'SELECT "id" FROM "query_test_records" ORDER BY "id" ASC LIMIT 1'
    )


def test_count_wraps_limited_select():
    q = QueryTestRecord.query({"aFlag": True}).limit(3)
    assert sql_of(q, count=True) == (
        'SELECT count(*)::int FROM (SELECT * FROM "query_test_records" '
        'WHERE "a_flag" = $1 ORDER BY "id" ASC LIMIT 3) AS a',
        [True],
    )


# -- Options -----------------------------------------------------------------


def test_output_conflicting_with_returns_raises():
    q = QueryTestRecord.query(returns="id")
    with pytest.raises(IncompatibleOutputSpecifiedError):
        q.output("object")
    with pytest.raises(IncompatibleOutputSpecifiedError):
        QueryTestRecord.query(returns=["id", "email"], output="value")


def test_returns_none_clears_returns_but_keeps_output():
    q = QueryTestRecord.query(returns=["id", "email"])
    q.returns(None)
    assert q._returns is None
    assert q._output is OutputType.OBJECT


async def test_value_output_without_returns_raises_on_run():
    conn = make_conn(ROWS)
    q = QueryTestRecord.query(None, conn, output="value")
    with pytest.raises(IncompatibleOutputSpecifiedError):
        await q.run()
    conn.exec_driver_sql.assert_not_awaited()


async def test_changing_statement_marks_unloaded():
    conn = make_conn(ROWS)
    q = await QueryTestRecord.query({"aNumber": 0}, conn).run()
    assert q.is_loaded

    q.limit(None)
    assert q.is_loaded
    q.limit(1)
    assert not q.is_loaded

    await q.run()
    q.limit(1)
    assert q.is_loaded
    q.offset(None)
    assert q.is_loaded
    q.offset(0)
    assert not q.is_loaded

    await q.run()
    q.offset(0)
    assert q.is_loaded
    q.offset(2)
    assert not q.is_loaded

    await q.run()
    q.where({"aFlag": True})
    assert not q.is_loaded


# -- Buffered execution ------------------------------------------------------


async def test_run_builds_records_with_cascaded_connection():
    conn = make_conn(ROWS)
    q = await QueryTestRecord.query({"aNumber": 0}, conn).run()

    query, values = sent_sql(conn)
    assert query == (
        'SELECT * FROM "query_test_records" WHERE "a_number" = $1 ORDER BY "id" ASC'
    )
    assert values == (0,)
    assert len(q) == 2
    first = q[0]
    assert isinstance(first, QueryTestRecord)
    assert first.is_loaded
    assert first.aNumber == 0
    assert first.conn is conn
    assert [r.id for r in q] == [1, 2]


async def test_run_uses_default_pool_and_releases():
    conn = make_conn(ROWS)
    set_default_pool(make_pool(conn))

    q = await QueryTestRecord.query({"aNumber": 0}).run()

    assert len(q) == 2
    conn.close.assert_awaited_once()
    conn.invalidate.assert_not_awaited()


async def test_data_omits_private_fields():
    conn = make_conn(ROWS)
    q = await QueryTestRecord.query(None, conn).run()

    data = q.data()
    assert data[0]["email"] == "a@example.com"
    assert "secret" not in data[0]
    assert q.data(include_private=True)[0]["secret"] == "s1"
    assert q.data(fields=["id"]) == [{"id": 1}, {"id": 2}]


async def test_value_output():
    conn = make_conn([{"aNumber": 4}, {"aNumber": 5}])
    q = await QueryTestRecord.query(None, conn, returns="aNumber").run()
    assert q.rows == [4, 5]
    assert q.data() == [4, 5]
    with pytest.raises(InvalidOptionCombinationError):
        q.data(fields=["id"])


async def test_object_output_filters_private_fields():
    conn = make_conn([{"id": 1, "secret": "s", "createdAt": None}])
    returns = ["id", "secret", "createdAt"]
    q = await QueryTestRecord.query(None, conn, returns=returns).run()
    assert q.rows == [{"id": 1, "secret": "s", "createdAt": None}]
    assert q.data() == [{"id": 1, "createdAt": None}]
    with pytest.raises(InvalidOptionCombinationError):
        q.data(only_dirty=True)


async def test_count():
    conn = make_conn(make_result(scalar=6))
    assert await QueryTestRecord.query({"aNumber": [0, 1]}, conn).count() == 6
    assert sent_sql(conn)[0].startswith("SELECT count(*)::int FROM (")


async def test_invalid_order_by_raises_on_run():
    conn = make_conn(ROWS)
    q = QueryTestRecord.query(None, conn).order_by("invalidField")
    with pytest.raises(FieldNotFoundError):
        await q.run()


def test_iterating_before_run_raises():
    with pytest.raises(QueryNotLoadedIterationError):
        list(QueryTestRecord.query())


async def test_async_iteration_requires_stream_mode():
    q = QueryTestRecord.query()
    with pytest.raises(AsyncIterationUnavailableError):
        async for _ in q:
            pass


# -- Stream mode -------------------------------------------------------------


def stream_pool(*batches):
    driver = make_driver()
    cursor = driver.cursor.return_value
    cursor.fetch.side_effect = list(batches)
    conn = make_conn(driver=driver)
    return make_pool(conn), conn, driver


async def test_stream_yields_records_and_releases_connection():
    pool, conn, driver = stream_pool(ROWS, [])
    q = QueryTestRecord.query({"aNumber": 0}, pool, stream=True)

    ids = [record.id async for record in q]

    assert ids == [1, 2]
    args = driver.cursor.await_args.args
    assert args[0].startswith('SELECT * FROM "query_test_records" WHERE')
    assert args[1:] == (0,)
    driver.transaction.return_value.start.assert_awaited_once()
    driver.transaction.return_value.commit.assert_awaited_once()
    conn.close.assert_awaited_once()


async def test_stream_closed_early_by_context_manager():
    pool, conn, driver = stream_pool(ROWS)
    async with QueryTestRecord.query(None, pool, stream=True) as q:
        async for _record in q:
            break
    driver.transaction.return_value.commit.assert_awaited_once()
    conn.close.assert_awaited_once()
    assert q.stream is None


async def test_stream_mode_forbids_buffered_access():
    pool, _conn, _driver = stream_pool([])
    q = QueryTestRecord.query({"aNumber": 100}, pool, stream=True)
    await q.run()
    with pytest.raises(UnavailableInStreamModeError):
        list(q)
    with pytest.raises(UnavailableInStreamModeError):
        len(q)
    with pytest.raises(UnavailableInStreamModeError):
        q.data()
    await q.close()


async def test_returns_is_unavailable_in_stream_mode():
    q = QueryTestRecord.query(returns="id", stream=True)
    with pytest.raises(UnavailableInStreamModeError):
        await q.run()


async def test_non_record_output_is_unavailable_in_stream_mode():
    q = QueryTestRecord.query(output="object", stream=True)
    with pytest.raises(UnavailableInStreamModeError):
        await q.run()
