"""
RecordQuery: a chainable, lazily-run SELECT over one record type.

Usage::

    q = QueryTestRecord.query({"aFlag": True}).order_by("-aNumber").limit(10)
    await q.run()
    for record in q:
        ...

    numbers = await QueryTestRecord.query(returns="aNumber").run()
    total = await QueryTestRecord.query({"aFlag": NOT_NULL}).count()

    async for record in QueryTestRecord.query(stream=True):
        ...

Any setter that changes the statement marks the query stale
(``is_loaded = False``); ``run()`` loads it again.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection, Iterator, Mapping, Sequence
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .connection import (
    ConnOrPool,
    checkout,
    execute,
    get_default_pool,
    get_usable_connection,
    release,
    split_conn_or_pool,
)
from .constants import OutputType, SortDirection
from .exceptions import (
    AsyncIterationUnavailableError,
    IncompatibleOutputSpecifiedError,
    InvalidOptionCombinationError,
    InvalidOutputTypeError,
    QueryNotLoadedIterationError,
    RecordTypeRequiredError,
    UnavailableInStreamModeError,
)
from .fields import format_order_by, get_field_db_name, parse_order_by
from .sql import quote_identifier
from .stream import RecordStream
from .values import RenderedSql
from .where import compile_where

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from .record import Record

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="Record")


def implied_output(returns: str | Sequence[str]) -> OutputType:
    return OutputType.VALUE if isinstance(returns, str) else OutputType.OBJECT


def _coerce_output(output: Any) -> OutputType:
    try:
        return OutputType(output)
    except ValueError:
        raise InvalidOutputTypeError(output, [o.value for o in OutputType]) from None


class RecordQuery(Generic[R]):
    """
    Query engine for one record type.

    Output shapes:

    * ``record`` (default) rows become record instances.
    * ``object`` rows become dicts keyed by field key.
    * ``value`` rows become the single ``returns`` value.

    Setting ``returns`` implies ``value`` for one key and ``object`` for
    several; asking for a different output afterwards raises
    ``IncompatibleOutputSpecifiedError``.
    """

    def __init__(
        self,
        record_type: type[R],
        conn_or_pool: ConnOrPool | None = None,
        *,
        output: OutputType | str | None = None,
        returns: str | Collection[str] | None = None,
        stream: bool | None = None,
    ) -> None:
        from .record import Record

        if not (isinstance(record_type, type) and issubclass(record_type, Record)):
            raise RecordTypeRequiredError(record_type)

        self.record_type = record_type
        self.conn, self.pool = split_conn_or_pool(conn_or_pool)

        self.rows: list[Any] = []
        self.is_loaded = False
        self._stream: RecordStream[R] | None = None

        self._wheres: list[Any] = []
        self._order_bys: list[tuple[str, SortDirection]] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._output = OutputType.RECORD
        self._returns: str | list[str] | None = None
        self._stream_mode = False

        self.options(output=output, returns=returns, stream=stream)

    @property
    def record_name(self) -> str:
        return self.record_type.__name__

    @property
    def stream(self) -> RecordStream[R] | None:
        return self._stream

    def __repr__(self) -> str:
        state = "loaded" if self.is_loaded else "stale"
        return f"<RecordQuery {self.record_name} output={self._output.value} {state}>"

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def set_connection(
        self, conn: AsyncConnection | None, *, release_old: bool = True
    ) -> RecordQuery[R]:
        old = self.conn
        self.conn = conn
        if release_old and old is not None and old is not conn:
            await release(old)
        return self

    async def set_pool(
        self, pool: AsyncEngine | None, *, release_old: bool = True
    ) -> RecordQuery[R]:
        self.pool = pool
        return await self.set_connection(None, release_old=release_old)

    # ------------------------------------------------------------------
    # Chainable setters
    # ------------------------------------------------------------------

    def set_loaded(self, is_loaded: bool) -> RecordQuery[R]:
        self.is_loaded = is_loaded
        return self

    def where(self, wheres: Any) -> RecordQuery[R]:
        self._wheres.append(wheres)
        return self.set_loaded(False)

    def order_by(self, *order_bys: Any) -> RecordQuery[R]:
        """Each spec is ``"key"``, ``"-key"`` or ``(key, direction)``."""
        self._order_bys.extend(parse_order_by(spec) for spec in order_bys)
        return self.set_loaded(False)

    def limit(self, limit: int | None) -> RecordQuery[R]:
        if limit != self._limit:
            self.set_loaded(False)
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> RecordQuery[R]:
        if offset != self._offset:
            self.set_loaded(False)
        self._offset = offset
        return self

    def output(self, output: OutputType | str) -> RecordQuery[R]:
        output = _coerce_output(output)
        self._validate_returns(self._returns, output)
        if output is not self._output:
            self.set_loaded(False)
        self._output = output
        return self

    def returns(self, keys: str | Collection[str] | None) -> RecordQuery[R]:
        """One key gives ``value`` output, several give ``object``; ``None`` clears."""
        if keys is not None and not isinstance(keys, str):
            keys = list(keys)
        if keys != self._returns:
            self.set_loaded(False)
        self._returns = keys
        if keys is None:
            return self
        return self.output(implied_output(keys))

    def options(
        self,
        *,
        output: OutputType | str | None = None,
        returns: str | Collection[str] | None = None,
        stream: bool | None = None,
    ) -> RecordQuery[R]:
        if stream is not None:
            if stream != self._stream_mode:
                self.set_loaded(False)
            self._stream_mode = stream
        if returns is not None:
            self.returns(returns)
        if output is not None:
            self.output(output)
        return self

    def _validate_returns(
        self, returns: str | list[str] | None, output: OutputType
    ) -> None:
        if returns is None:
            return
        if output is not implied_output(returns):
            raise IncompatibleOutputSpecifiedError(output.value, returns)

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    def _select_sql(self) -> str:
        if self._output is OutputType.RECORD:
            return "*"
        if self._returns is None:
            keys: list[str] = list(self.record_type.fields)
        elif isinstance(self._returns, str):
            keys = [self._returns]
        else:
            keys = self._returns

        columns = []
        for key in keys:
            db_name = get_field_db_name(self.record_type.fields, key, self.record_name)
            column = quote_identifier(db_name)
            if db_name != key:
                column += f" AS {quote_identifier(key)}"
            columns.append(column)
        return ", ".join(columns)

    def get_sql(
        self,
        *,
        count: bool = False,
        is_subquery: bool = False,
        bind_params_used: int = 0,
    ) -> RenderedSql:
        fields = self.record_type.fields
        parts = [
            f"SELECT {self._select_sql()} FROM",
            quote_identifier(self.record_type.table),
        ]
        values: list[Any] = []

        if self._wheres:
            where = compile_where(
                fields,
                self._wheres,
                record_name=self.record_name,
                bind_params_used=bind_params_used,
            )
            parts += ["WHERE", where.query]
            values = list(where.values)

        has_limit = self._limit is not None
        has_offset = self._offset is not None
        if not (is_subquery and not has_limit and not has_offset):
            order_bys = self._order_bys or [
                (key, SortDirection.ASC) for key in self.record_type.primary_key_fields
            ]
            if order_bys:
                order_sql = format_order_by(fields, order_bys, self.record_name)
                parts.append(f"ORDER BY {order_sql}")

        if has_limit:
            parts.append(f"LIMIT {int(self._limit)}")  # type: ignore[arg-type]
        if has_offset:
            parts.append(f"OFFSET {int(self._offset)}")  # type: ignore[arg-type]

        query = " ".join(parts)
        if count:
            # LIMIT / OFFSET stay inside, so they bound the count.
            query = f"SELECT count(*)::int FROM ({query}) AS a"
        return RenderedSql(query, values)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _check_runnable(self) -> None:
        self._validate_returns(self._returns, self._output)
        if self._output is OutputType.VALUE and self._returns is None:
            raise IncompatibleOutputSpecifiedError(self._output.value, None)
        if self._stream_mode:
            if self._returns is not None:
                raise UnavailableInStreamModeError("Option returns")
            if self._output is not OutputType.RECORD:
                raise UnavailableInStreamModeError("Output other than record")

    async def run(self, conn_or_pool: ConnOrPool | None = None) -> RecordQuery[R]:
        """
        Issue the query. ``conn_or_pool`` is handed to the resulting
        records for later saves; the query itself uses its own connection
        or pool.
        """
        self._check_runnable()
        await self.close()

        cascaded = conn_or_pool or self.conn or self.pool
        rendered = self.get_sql()

        if self._stream_mode:
            await self._open_stream(rendered, cascaded)
            return self.set_loaded(True)

        async with checkout(self.conn, self.pool) as conn:
            result = await execute(conn, rendered.query, rendered.values)
            rows = result.mappings().all()

        self.rows = self._shape_rows(rows, cascaded)
        return self.set_loaded(True)

    def _shape_rows(
        self, rows: Sequence[Mapping[str, Any]], cascaded: ConnOrPool | None
    ) -> list[Any]:
        if self._output is OutputType.RECORD:
            return [
                self.record_type.from_db_row(row, conn_or_pool=cascaded) for row in rows
            ]
        if self._output is OutputType.VALUE:
            return [row[self._returns] for row in rows]  # type: ignore[index]
        return [dict(row) for row in rows]

    async def _open_stream(
        self, rendered: RenderedSql, cascaded: ConnOrPool | None
    ) -> None:
        owned = self.conn is None
        if self.conn is not None:
            conn = self.conn
        else:
            conn = await get_usable_connection(self.pool or get_default_pool())

        async def on_close(failed: bool) -> None:
            if owned:
                await release(conn, destroy=failed)

        stream: RecordStream[R] = RecordStream(
            conn,
            rendered.query,
            rendered.values,
            make_record=partial(self.record_type.from_db_row, conn_or_pool=cascaded),
            on_close=on_close,
        )
        self._stream = await stream.open()

    async def count(self) -> int:
        """Count the rows the query would return."""
        rendered = self.get_sql(count=True)
        async with checkout(self.conn, self.pool) as conn:
            result = await execute(conn, rendered.query, rendered.values)
            return int(result.scalar_one())

    async def close(self) -> None:
        """Close an open stream and release its connection."""
        if self._stream is not None:
            stream, self._stream = self._stream, None
            await stream.aclose()

    async def __aenter__(self) -> RecordQuery[R]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def data(
        self,
        *,
        fields: Collection[str] | None = None,
        include_defaults: bool = False,
        include_private: bool = False,
        only_dirty: bool = False,
        only_set: bool = False,
    ) -> list[Any]:
        """Plain Python data for the loaded rows."""
        if self._stream_mode:
            raise UnavailableInStreamModeError("data()")
        if self._output is OutputType.VALUE and fields is not None:
            raise InvalidOptionCombinationError("output=value does not support fields")
        if self._output is not OutputType.RECORD and (only_dirty or only_set):
            raise InvalidOptionCombinationError(
                "only_dirty and only_set are only supported with record output"
            )

        if self._output is OutputType.RECORD:
            return [
                row.data(
                    fields=fields,
                    include_defaults=include_defaults,
                    include_private=include_private,
                    only_dirty=only_dirty,
                    only_set=only_set,
                )
                for row in self.rows
            ]

        record_type = self.record_type
        allowed: set[str] | None = None
        if fields is not None or not include_private:
            allowed = set(fields if fields is not None else record_type.fields)
            if not include_private:
                allowed -= set(record_type.private_fields)

        results = []
        for row in self.rows:
            if self._output is OutputType.VALUE:
                value = row
                if allowed is not None and self._returns not in allowed:
                    value = None
                if include_defaults and value is None:
                    default = record_type.get_field_default_value(str(self._returns))
                    if default is not None:
                        value = default
                results.append(value)
                continue

            obj = dict(row)
            if allowed is not None:
                obj = {key: value for key, value in obj.items() if key in allowed}
            if include_defaults:
                for key, value in obj.items():
                    if value is None:
                        default = record_type.get_field_default_value(key)
                        if default is not None:
                            obj[key] = default
            results.append(obj)
        return results

    # ------------------------------------------------------------------
    # Iteration and sequence protocol
    # ------------------------------------------------------------------

    def _require_buffered(self, what: str) -> None:
        if self._stream_mode:
            raise UnavailableInStreamModeError(what)

    def __iter__(self) -> Iterator[Any]:
        self._require_buffered("Synchronous iteration")
        if not self.is_loaded:
            raise QueryNotLoadedIterationError()
        return iter(self.rows)

    def __aiter__(self) -> AsyncIterator[R]:
        if not self._stream_mode:
            raise AsyncIterationUnavailableError()
        return self._iterate_stream()

    async def _iterate_stream(self) -> AsyncIterator[R]:
        if not self.is_loaded or self._stream is None:
            await self.run()
        stream = self._stream
        assert stream is not None
        try:
            async for record in stream:
                yield record
        finally:
            await stream.aclose()

    def __bool__(self) -> bool:
        return True

    def __len__(self) -> int:
        self._require_buffered("len()")
        return len(self.rows)

    def __getitem__(self, index: Any) -> Any:
        self._require_buffered("Indexing")
        return self.rows[index]

    def __contains__(self, item: object) -> bool:
        self._require_buffered("Membership testing")
        return item in self.rows

    def __reversed__(self) -> Iterator[Any]:
        self._require_buffered("reversed()")
        return reversed(self.rows)

    def index(self, item: Any, *args: Any) -> int:
        self._require_buffered("index()")
        return self.rows.index(item, *args)
