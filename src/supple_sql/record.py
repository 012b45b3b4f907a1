"""
Record: one row of one table.

Declare a record type by subclassing::

    class QueryTestRecord(Record):
        table = "query_test_records"
        fields = {
            "id": FieldSpec(type=FieldType.SERIAL, primary_key=True),
            "email": {"type": "text", "nullable": False},
            "aNumber": {"type": "integer"},
            "aFlag": {"type": "boolean"},
            "optionalAt": {"type": "timestamp with time zone"},
            "createdAt": {"type": "timestamp with time zone", "default": NOW},
        }

Field keys map to snake_case columns unless ``name`` is given. Every key
gets a property (``record.aNumber``) unless the name is already taken on
the class; ``get()`` / ``set()`` always work.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from .connection import ConnOrPool, checkout, execute, release, split_conn_or_pool
from .constants import FieldType, Sentinel
from .exceptions import (
    FieldNotFoundError,
    IncorrectFieldsError,
    PrimaryKeyValueMissingError,
    RecordMissingPrimaryKeyError,
)
from .fields import FieldSpec, coerce_fields, get_field_db_name, is_single_order_by
from .sql import quote_identifier, quote_literal
from .values import UNSET, SqlValue
from .where import compile_where

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from .record_query import RecordQuery

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound="Record")

# Instance attributes a generated field property must not shadow.
_INSTANCE_ATTRS = frozenset({"is_loaded", "warnings"})


def _field_property(key: str) -> property:
    def getter(self: Record) -> Any:
        return self.get(key)

    def setter(self: Record, value: Any) -> None:
        self.set(key, value)

    return property(getter, setter, doc=f"Field ``{key}``.")


class Record:
    """Base class for record types."""

    table: ClassVar[str] = ""
    fields: ClassVar[dict[str, FieldSpec]] = {}
    primary_key_fields: ClassVar[tuple[str, ...]] = ()
    private_fields: ClassVar[tuple[str, ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.fields = coerce_fields(cls.fields)

        declared = cls.__dict__.get("primary_key_fields")
        if declared:
            cls.primary_key_fields = tuple(declared)
        else:
            flagged = tuple(k for k, spec in cls.fields.items() if spec.primary_key)
            cls.primary_key_fields = flagged or tuple(cls.primary_key_fields)
        cls.private_fields = tuple(cls.private_fields)

        for key in cls.fields:
            if key in _INSTANCE_ATTRS or not key.isidentifier():
                continue
            if not hasattr(cls, key):
                setattr(cls, key, _field_property(key))

    def __init__(
        self,
        values: Any = None,
        /,
        *,
        conn_or_pool: ConnOrPool | None = None,
        **field_values: Any,
    ) -> None:
        cls = type(self)
        if not cls.primary_key_fields:
            raise RecordMissingPrimaryKeyError(cls.__name__)

        self._conn, self._pool = split_conn_or_pool(conn_or_pool)
        self._values: dict[str, Any] = {}
        self._clean: dict[str, Any] = {}
        self._set_fields: set[str] = set()
        self._primary_key_internal: dict[str, Any] = {}
        self.is_loaded = False
        self.warnings: list[str] = []

        if values is not None and not isinstance(values, Mapping):
            if len(cls.primary_key_fields) != 1:
                raise IncorrectFieldsError(
                    f"{cls.__name__} has a composite primary key; pass a mapping "
                    "of primary key values instead of a single value"
                )
            values = {cls.primary_key_fields[0]: values}

        for key, value in {**(values or {}), **field_values}.items():
            self.set(key, value)

    def __repr__(self) -> str:
        pk = ", ".join(f"{k}={self._values.get(k)!r}" for k in self.primary_key_fields)
        return f"<{type(self).__name__} {pk}>"

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def conn(self) -> AsyncConnection | None:
        return self._conn

    @property
    def pool(self) -> AsyncEngine | None:
        return self._pool

    async def set_connection(
        self, conn: AsyncConnection | None, *, release_old: bool = True
    ) -> None:
        old, self._conn = self._conn, conn
        if release_old and old is not None and old is not conn:
            await release(old)

    async def set_pool(
        self, pool: AsyncEngine | None, *, release_old: bool = True
    ) -> None:
        self._pool = pool
        await self.set_connection(None, release_old=release_old)

    # ------------------------------------------------------------------
    # Field registry
    # ------------------------------------------------------------------

    @classmethod
    def get_field_db_name(cls, key: str) -> str:
        return get_field_db_name(cls.fields, key, cls.__name__)

    @classmethod
    def get_field_default_value(cls, key: str) -> Any:
        spec = cls.fields.get(key)
        return spec.default if spec is not None else None

    @classmethod
    def _select_fields_sql(cls) -> str:
        columns = []
        for key, spec in cls.fields.items():
            column = quote_identifier(cls.get_field_db_name(key))
            if spec.type is FieldType.INTERVAL:
                column += "::text"
            columns.append(column)
        return ", ".join(columns)

    # ------------------------------------------------------------------
    # Values and state
    # ------------------------------------------------------------------

    def _check_field(self, key: str) -> None:
        if key not in self.fields:
            raise FieldNotFoundError(key, type(self).__name__, list(self.fields))

    def get(self, key: str) -> Any:
        self._check_field(key)
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._check_field(key)
        self._values[key] = value
        self._set_fields.add(key)

    def is_field_set(self, key: str) -> bool:
        return key in self._set_fields

    def is_field_dirty(self, key: str) -> bool:
        return self._values.get(key, UNSET) != self._clean.get(key, UNSET)

    def is_dirty(self) -> bool:
        return any(self.is_field_dirty(key) for key in self.fields)

    def is_primary_key_set(self) -> bool:
        return all(key in self._set_fields for key in self.primary_key_fields)

    def set_loaded(self, is_loaded: bool, skip_primary_key_check: bool = False) -> None:
        """Mark the values as matching the database row (or not)."""
        if is_loaded:
            if not skip_primary_key_check:
                for key in self.primary_key_fields:
                    if key not in self._set_fields:
                        raise PrimaryKeyValueMissingError(type(self).__name__, key)
            for key in self.primary_key_fields:
                self._primary_key_internal[key] = self._values.get(key)
            self._clean = dict(self._values)
        else:
            self._clean = {}
        self.is_loaded = is_loaded

    def get_primary_key_values(
        self, use_internal_values: bool = False
    ) -> dict[str, Any]:
        source = self._primary_key_internal if use_internal_values else self._values
        return {key: source.get(key) for key in self.primary_key_fields}

    def load_db_object(self, row: Mapping[str, Any]) -> None:
        """Take values from a row keyed by column name, then mark loaded."""
        for key in self.fields:
            value = row.get(self.get_field_db_name(key), UNSET)
            if value is not UNSET:
                self.set(key, value)
        self.set_loaded(True)

    @classmethod
    def from_db_row(
        cls: type[RecordT],
        row: Mapping[str, Any],
        *,
        conn_or_pool: ConnOrPool | None = None,
    ) -> RecordT:
        record = cls(conn_or_pool=conn_or_pool)
        record.load_db_object(row)
        return record

    def restore(self, values: Mapping[str, Any]) -> None:
        """Set values known to match the database without querying it."""
        for key, value in values.items():
            self.set(key, value)
        self.set_loaded(True, skip_primary_key_check=True)

    def data(
        self,
        *,
        fields: Collection[str] | None = None,
        include_defaults: bool = False,
        include_private: bool = False,
        only_dirty: bool = False,
        only_set: bool = False,
    ) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in fields if fields is not None else self.fields:
            default = self.get_field_default_value(key)
            has_default = include_defaults and default is not None

            if only_dirty and not self.is_field_dirty(key) and not has_default:
                continue
            if only_set and not self.is_field_set(key) and not has_default:
                continue

            value = self.get(key)
            if key not in self._values and has_default:
                value = default
            result[key] = value

        if not include_private:
            for key in self.private_fields:
                result.pop(key, None)
        return result

    def to_dict(self) -> dict[str, Any]:
        return self.data()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _sql_assignments(
        self, values: Mapping[str, Any]
    ) -> tuple[list[tuple[str, str]], list[Any]]:
        """``(column, sql)`` pairs plus bound values, numbered from ``$1``."""
        assignments: list[tuple[str, str]] = []
        bound: list[Any] = []
        for key, value in values.items():
            column = quote_identifier(self.get_field_db_name(key))
            if isinstance(value, Sentinel):
                sql = value.value
            elif isinstance(value, SqlValue) and not value.bind:
                inner = value.get_value()
                sql = quote_literal(inner) if value.quote else str(inner)
            else:
                if isinstance(value, SqlValue):
                    value = value.get_value()
                bound.append(value)
                sql = f"${len(bound)}"
            assignments.append((column, sql))
        return assignments, bound

    async def load(self, fields: Mapping[str, Any] | None = None) -> bool:
        """
        Load the single row matching ``fields`` (default: the fields set so
        far). Returns ``False`` when no row or more than one row matches.
        """
        cls = type(self)
        if fields is None:
            fields = {
                k: self._values.get(k) for k in cls.fields if k in self._set_fields
            }
        if not fields:
            return False

        where = compile_where(cls.fields, fields, record_name=cls.__name__)
        query = (
            f"SELECT {cls._select_fields_sql()} FROM {quote_identifier(cls.table)} "
            f"WHERE {where.query} LIMIT 2"
        )
        async with checkout(self._conn, self._pool) as conn:
            result = await execute(conn, query, where.values)
            rows = result.mappings().all()

        if len(rows) == 1:
            self.load_db_object(rows[0])
            return True
        if len(rows) > 1:
            message = f"Multiple results matched load() attempt on {cls.__name__}"
            self.warnings.append(message)
            logger.warning("%s: %r", message, fields)
        return False

    async def save(
        self, skip_reload: bool = False, ignore_conflict: bool = False
    ) -> bool:
        """UPDATE dirty fields of a loaded record, otherwise INSERT it."""
        if self.is_loaded:
            return await self._update(skip_reload)
        return await self._insert(skip_reload, ignore_conflict)

    async def _update(self, skip_reload: bool) -> bool:
        cls = type(self)
        assignments, values = self._sql_assignments(
            self.data(include_private=True, only_dirty=True)
        )
        if not assignments:
            return False

        where = compile_where(
            cls.fields,
            self.get_primary_key_values(use_internal_values=True),
            record_name=cls.__name__,
            bind_params_used=len(values),
        )
        set_sql = ", ".join(f"{column} = {sql}" for column, sql in assignments)
        table = quote_identifier(cls.table)
        query = f"UPDATE {table} SET {set_sql} WHERE {where.query}"
        if not skip_reload:
            query += f" RETURNING {cls._select_fields_sql()}"
        return await self._write(query, [*values, *where.values], skip_reload)

    async def _insert(self, skip_reload: bool, ignore_conflict: bool) -> bool:
        cls = type(self)
        assignments, values = self._sql_assignments(
            self.data(include_defaults=True, include_private=True, only_dirty=True)
        )

        query = f"INSERT INTO {quote_identifier(cls.table)}"
        if assignments:
            columns = ", ".join(column for column, _ in assignments)
            sqls = ", ".join(sql for _, sql in assignments)
            query += f" ({columns}) VALUES ({sqls})"
        else:
            query += " DEFAULT VALUES"
        if ignore_conflict:
            query += " ON CONFLICT DO NOTHING"
        if not skip_reload:
            query += f" RETURNING {cls._select_fields_sql()}"
        return await self._write(query, values, skip_reload)

    async def _write(self, query: str, values: list[Any], skip_reload: bool) -> bool:
        async with checkout(self._conn, self._pool) as conn:
            result = await execute(conn, query, values)
            row = None if skip_reload else result.mappings().first()

        if skip_reload:
            return True
        if row is None:
            return False
        self.load_db_object(row)
        return True

    async def delete(self) -> bool:
        cls = type(self)
        primary_key = self.get_primary_key_values()
        for key, value in primary_key.items():
            if value is None:
                raise PrimaryKeyValueMissingError(cls.__name__, key)

        where = compile_where(cls.fields, primary_key, record_name=cls.__name__)
        query = f"DELETE FROM {quote_identifier(cls.table)} WHERE {where.query}"
        async with checkout(self._conn, self._pool) as conn:
            result = await execute(conn, query, where.values)
            deleted = result.rowcount == 1

        if deleted:
            self.set_loaded(False)
        return deleted

    # ------------------------------------------------------------------
    # Class-level lookups
    # ------------------------------------------------------------------

    @classmethod
    def query(
        cls: type[RecordT],
        wheres: Any = None,
        conn_or_pool: ConnOrPool | None = None,
        **options: Any,
    ) -> RecordQuery[RecordT]:
        from .record_query import RecordQuery

        query = RecordQuery(cls, conn_or_pool, **options)
        if wheres is not None:
            query.where(wheres)
        return query

    @classmethod
    async def find(
        cls: type[RecordT],
        wheres: Any,
        conn_or_pool: ConnOrPool | None = None,
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any = None,
    ) -> list[RecordT]:
        query = cls.query(wheres, conn_or_pool).limit(limit).offset(offset)
        if order_by:
            specs = [order_by] if is_single_order_by(order_by) else list(order_by)
            query.order_by(*specs)
        await query.run()
        return list(query.rows)

    @classmethod
    async def find_one(
        cls: type[RecordT], values: Any, conn_or_pool: ConnOrPool | None = None
    ) -> RecordT | None:
        record = cls(values, conn_or_pool=conn_or_pool)
        return record if await record.load() else None

    @classmethod
    async def get_by_primary_key(
        cls: type[RecordT], values: Any, conn_or_pool: ConnOrPool | None = None
    ) -> RecordT | None:
        return await cls.find_one(values, conn_or_pool)

    @classmethod
    async def delete_one(
        cls, values: Any, conn_or_pool: ConnOrPool | None = None
    ) -> bool:
        return await cls(values, conn_or_pool=conn_or_pool).delete()

    @classmethod
    async def delete_by_primary_key(
        cls, values: Any, conn_or_pool: ConnOrPool | None = None
    ) -> bool:
        return await cls.delete_one(values, conn_or_pool)
