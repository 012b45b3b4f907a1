"""
One helper per comparison, returning a bound ``SqlValue``::

    {"email": like("%@example.com")}
    {"id": in_([1, 2, 3])}
    {"id": all_(Other.query({"kind": "a"}, returns="id"))}
    exists(Other.query({"owner": 1}, returns="id"))

Pass ``bind=False`` to inline the value (``quote=True`` to quote it).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .constants import Comparison
from .values import SqlValue

ComparisonHelper = Callable[..., SqlValue]


def _helper(comparison: Comparison) -> ComparisonHelper:
    def helper(
        value: Any = None, *, bind: bool = True, quote: bool = False
    ) -> SqlValue:
        return SqlValue(value, bind=bind, comparison=comparison, quote=quote)

    helper.__name__ = comparison.name.lower()
    helper.__doc__ = f"Compare with ``{comparison.value}``."
    return helper


def raw(value: Any, *, quote: bool = False) -> SqlValue:
    """Inline ``value`` into the SQL text without binding."""
    return SqlValue(value, bind=False, quote=quote)


equal = _helper(Comparison.EQUAL)
not_equal = _helper(Comparison.NOT_EQUAL)
greater = _helper(Comparison.GREATER)
greater_equal = _helper(Comparison.GREATER_EQUAL)
less = _helper(Comparison.LESS)
less_equal = _helper(Comparison.LESS_EQUAL)
distinct_from = _helper(Comparison.DISTINCT_FROM)
not_distinct_from = _helper(Comparison.NOT_DISTINCT_FROM)

in_ = _helper(Comparison.IN)
not_in = _helper(Comparison.NOT_IN)
any_ = _helper(Comparison.ANY)
not_any = _helper(Comparison.NOT_ANY)
all_ = _helper(Comparison.ALL)
not_all = _helper(Comparison.NOT_ALL)
exists = _helper(Comparison.EXISTS)
not_exists = _helper(Comparison.NOT_EXISTS)

like = _helper(Comparison.LIKE)
not_like = _helper(Comparison.NOT_LIKE)
ilike = _helper(Comparison.ILIKE)
not_ilike = _helper(Comparison.NOT_ILIKE)
regex = _helper(Comparison.REGEX)
not_regex = _helper(Comparison.NOT_REGEX)
iregex = _helper(Comparison.IREGEX)
not_iregex = _helper(Comparison.NOT_IREGEX)
similar_to = _helper(Comparison.SIMILAR_TO)
not_similar_to = _helper(Comparison.NOT_SIMILAR_TO)

unknown = _helper(Comparison.UNKNOWN)
not_unknown = _helper(Comparison.NOT_UNKNOWN)

HELPERS: dict[Comparison, ComparisonHelper] = {
    Comparison.EQUAL: equal,
    Comparison.NOT_EQUAL: not_equal,
    Comparison.GREATER: greater,
    Comparison.GREATER_EQUAL: greater_equal,
    Comparison.LESS: less,
    Comparison.LESS_EQUAL: less_equal,
    Comparison.DISTINCT_FROM: distinct_from,
    Comparison.NOT_DISTINCT_FROM: not_distinct_from,
    Comparison.IN: in_,
    Comparison.NOT_IN: not_in,
    Comparison.ANY: any_,
    Comparison.NOT_ANY: not_any,
    Comparison.ALL: all_,
    Comparison.NOT_ALL: not_all,
    Comparison.EXISTS: exists,
    Comparison.NOT_EXISTS: not_exists,
    Comparison.LIKE: like,
    Comparison.NOT_LIKE: not_like,
    Comparison.ILIKE: ilike,
    Comparison.NOT_ILIKE: not_ilike,
    Comparison.REGEX: regex,
    Comparison.NOT_REGEX: not_regex,
    Comparison.IREGEX: iregex,
    Comparison.NOT_IREGEX: not_iregex,
    Comparison.SIMILAR_TO: similar_to,
    Comparison.NOT_SIMILAR_TO: not_similar_to,
    Comparison.UNKNOWN: unknown,
    Comparison.NOT_UNKNOWN: not_unknown,
}
