"""
Condition value model.

Values placed in a condition tree are plain Python values, the sentinels
from :mod:`supple_sql.constants`, :data:`UNSET`, :class:`SqlValue`
wrappers, or anything implementing :class:`SqlRenderable`.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .constants import Comparison

_PLACEHOLDER = re.compile(r"\$(\d+)")


class _UnsetType:
    """Marks a field value that was never provided; skipped in where clauses."""

    _instance: _UnsetType | None = None

    def __new__(cls) -> _UnsetType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _UnsetType()


@dataclass(frozen=True)
class RenderedSql:
    """A SQL fragment plus its positional values, numbered ``$1..$N``."""

    query: str
    values: list[Any] = field(default_factory=list)
    comparison: Comparison | None = None

    @classmethod
    def coerce(cls, rendered: Any) -> RenderedSql:
        """Accept a ``RenderedSql``, a mapping or a ``(query, values[, cmp])`` tuple."""
        if isinstance(rendered, RenderedSql):
            return rendered
        if isinstance(rendered, Mapping):
            return cls(
                rendered["query"],
                list(rendered.get("values") or ()),
                rendered.get("comparison"),
            )
        if isinstance(rendered, tuple) and len(rendered) in (2, 3):
            return cls(rendered[0], list(rendered[1]), *rendered[2:])
        raise TypeError(f"Cannot interpret {rendered!r} as rendered SQL")


@runtime_checkable
class SqlRenderable(Protocol):
    """Anything that can render itself as a (sub-)query."""

    def get_sql(
        self, *, is_subquery: bool = False, bind_params_used: int = 0
    ) -> RenderedSql: ...


class RawSql:
    """
    Hand-written SQL usable as a sub-query.

    Placeholders are written from ``$1`` and shifted by the number of
    values already bound in the enclosing statement::

        RawSql('SELECT "id" FROM "other" WHERE "kind" = $1', ["a"])
    """

    def __init__(
        self,
        query: str,
        values: Sequence[Any] = (),
        comparison: Comparison | None = None,
    ) -> None:
        self.query = query
        self.values = list(values)
        self.comparison = comparison

    def get_sql(
        self, *, is_subquery: bool = False, bind_params_used: int = 0
    ) -> RenderedSql:
        query = self.query
        if bind_params_used:
            query = _PLACEHOLDER.sub(
                lambda m: f"${int(m.group(1)) + bind_params_used}", query
            )
        return RenderedSql(query, list(self.values), self.comparison)

    def __repr__(self) -> str:
        return f"RawSql({self.query!r}, {self.values!r})"


class SqlValue:
    """
    A value with explicit rendering instructions.

    ``bind``       send as a positional parameter rather than inline text.
    ``comparison`` override the comparison for this value.
    ``quote``      inline with PostgreSQL literal quoting (``bind=False`` only).
    """

    __slots__ = ("value", "bind", "comparison", "quote")

    def __init__(
        self,
        value: Any = None,
        *,
        bind: bool = False,
        comparison: Comparison | None = None,
        quote: bool = False,
    ) -> None:
        self.value = value
        self.bind = bind
        self.comparison = comparison
        self.quote = quote

    def get_value(self) -> Any:
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SqlValue):
            return NotImplemented
        return (
            self.value == other.value
            and self.bind == other.bind
            and self.comparison == other.comparison
            and self.quote == other.quote
        )

    def __repr__(self) -> str:
        return (
            f"SqlValue({self.value!r}, bind={self.bind}, "
            f"comparison={self.comparison}, quote={self.quote})"
        )


def is_value_list(value: Any) -> bool:
    """Lists, tuples and sets are IN-lists when used as values."""
    return isinstance(value, (list, tuple, set, frozenset))
