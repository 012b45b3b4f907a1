"""Cursor-backed record streams."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .connection import translate_errors
from .constants import DEFAULT_STREAM_BATCH_SIZE

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncConnection

logger = logging.getLogger(__name__)

R = TypeVar("R")


class RecordStream(Generic[R]):
    """
    Lazily maps the rows of a server-side cursor to records.

    The cursor runs on the asyncpg connection underneath ``conn``; a
    driver transaction is opened for it when none is active. Cursor,
    transaction and ``on_close`` run exactly once, whether the stream is
    exhausted, fails or is closed early.
    """

    def __init__(
        self,
        conn: AsyncConnection,
        query: str,
        values: Sequence[Any],
        *,
        make_record: Callable[[Mapping[str, Any]], R],
        on_close: Callable[[bool], Awaitable[None]] | None = None,
        batch_size: int = DEFAULT_STREAM_BATCH_SIZE,
    ) -> None:
        self.query = query
        self.values = list(values)
        self._conn = conn
        self._make_record = make_record
        self._on_close = on_close
        self._batch_size = batch_size
        self._buffer: deque[Mapping[str, Any]] = deque()
        self._cursor: Any = None
        self._transaction: Any = None
        self._exhausted = False
        self.closed = False

    async def open(self) -> RecordStream[R]:
        logger.debug("STREAM %s VALUES %r", self.query, self.values)
        try:
            with translate_errors():
                raw = await self._conn.get_raw_connection()
                driver = raw.driver_connection
                if not driver.is_in_transaction():
                    self._transaction = driver.transaction()
                    await self._transaction.start()
                self._cursor = await driver.cursor(self.query, *self.values)
        except BaseException:
            await self.aclose(failed=True)
            raise
        return self

    def __aiter__(self) -> RecordStream[R]:
        return self

    async def __anext__(self) -> R:
        if not self._buffer:
            await self._fill()
        if not self._buffer:
            await self.aclose()
            raise StopAsyncIteration
        return self._make_record(self._buffer.popleft())

    async def _fill(self) -> None:
        if self.closed or self._exhausted:
            return
        try:
            with translate_errors():
                batch = await self._cursor.fetch(self._batch_size)
        except BaseException:
            await self.aclose(failed=True)
            raise
        if len(batch) < self._batch_size:
            self._exhausted = True
        self._buffer.extend(batch)

    async def aclose(self, *, failed: bool = False) -> None:
        if self.closed:
            return
        self.closed = True
        self._buffer.clear()
        self._cursor = None
        try:
            if self._transaction is not None:
                if failed:
                    await self._transaction.rollback()
                else:
                    await self._transaction.commit()
        finally:
            self._transaction = None
            if self._on_close is not None:
                await self._on_close(failed)

    async def __aenter__(self) -> RecordStream[R]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose(failed=exc is not None)
