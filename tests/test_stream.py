"""Tests for cursor-backed record streams."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from support import make_conn, make_driver

from supple_sql import RecordStream


def stream_over(*batches, in_transaction: bool = False, batch_size: int = 2):
    driver = make_driver(in_transaction=in_transaction)
    driver.cursor.return_value.fetch.side_effect = list(batches)
    on_close = AsyncMock()
    stream = RecordStream(
        make_conn(driver=driver),
        "SELECT * FROM t WHERE a = $1",
        [5],
        make_record=dict,
        on_close=on_close,
        batch_size=batch_size,
    )
    return stream, driver, on_close


async def test_stream_reads_batches_until_short_batch():
    stream, driver, on_close = stream_over([{"id": 1}, {"id": 2}], [{"id": 3}])
    await stream.open()

    rows = [row async for row in stream]

    assert rows == [{"id": 1}, {"id": 2}, {"id": 3}]
    driver.cursor.assert_awaited_once_with("SELECT * FROM t WHERE a = $1", 5)
    assert driver.cursor.return_value.fetch.await_count == 2
    driver.transaction.return_value.commit.assert_awaited_once()
    on_close.assert_awaited_once_with(False)
    assert stream.closed


async def test_stream_ends_on_empty_batch():
    stream, _driver, on_close = stream_over([{"id": 1}, {"id": 2}], [])
    await stream.open()
    assert [row["id"] async for row in stream] == [1, 2]
    on_close.assert_awaited_once_with(False)


async def test_stream_joins_open_transaction():
    stream, driver, _on_close = stream_over([], in_transaction=True)
    await stream.open()
    assert [row async for row in stream] == []
    driver.transaction.assert_not_called()


async def test_fetch_error_rolls_back_and_closes():
    stream, driver, on_close = stream_over(RuntimeError("connection lost"))
    await stream.open()

    with pytest.raises(RuntimeError):
        await stream.__anext__()

    driver.transaction.return_value.rollback.assert_awaited_once()
    driver.transaction.return_value.commit.assert_not_awaited()
    on_close.assert_awaited_once_with(True)


async def test_open_error_closes_stream():
    stream, driver, on_close = stream_over()
    driver.cursor.side_effect = RuntimeError("syntax error")

    with pytest.raises(RuntimeError):
        await stream.open()

    driver.transaction.return_value.rollback.assert_awaited_once()
    on_close.assert_awaited_once_with(True)


async def test_close_is_idempotent():
    stream, driver, on_close = stream_over([{"id": 1}, {"id": 2}])
    async with await stream.open():
        assert await stream.__anext__() == {"id": 1}
    await stream.aclose()

    driver.transaction.return_value.commit.assert_awaited_once()
    on_close.assert_awaited_once_with(False)
