"""
Leaf value rules.

A leaf is one ``field: value`` pair. Each ``LeafRule`` recognizes one kind
of value and turns it into an operator, a right-hand side and bound
values. Rules are tried in registration order, so the order of the default
registry is the precedence between value kinds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..constants import (
    ARRAY_COMPARISONS,
    LHS_ONLY_COMPARISONS,
    LIST_COMPARISONS,
    PARENS_COMPARISONS,
    Comparison,
    Sentinel,
)
from ..exceptions import StructuralWhereError
from ..sql import quote_literal
from ..values import RenderedSql, SqlRenderable, SqlValue, is_value_list

if TYPE_CHECKING:
    from ..fields import FieldSpec


@dataclass(frozen=True)
class LeafContext:
    field_key: str
    field: FieldSpec
    comparison: Comparison | None
    bind_params_used: int


@dataclass
class LeafSql:
    """
    Resolved leaf. ``lhs`` replaces the column when set (``true = false``
    for empty lists); ``rhs`` is empty for operators without a right side.
    """

    comparison: Comparison
    operator: str
    rhs: str = ""
    values: list[Any] = field(default_factory=list)
    lhs: str | None = None


def placeholders(bind_params_used: int, count: int) -> str:
    return ", ".join(f"${bind_params_used + i}" for i in range(1, count + 1))


def wrap_rhs(rhs: str, comparison: Comparison) -> str:
    if comparison in PARENS_COMPARISONS:
        return f"({rhs})"
    return rhs


def _render_subquery(value: SqlRenderable, bind_params_used: int) -> RenderedSql:
    return RenderedSql.coerce(
        value.get_sql(is_subquery=True, bind_params_used=bind_params_used)
    )


def _empty_list(comparison: Comparison) -> LeafSql:
    # NOT IN () keeps every row, IN () keeps none
    rhs = "true" if comparison is Comparison.NOT_IN else "false"
    return LeafSql(Comparison.EQUAL, Comparison.EQUAL.value, rhs, lhs="true")


def _bind_list(items: list[Any], comparison: Comparison, offset: int) -> LeafSql:
    if any(isinstance(item, SqlRenderable) for item in items):
        raise StructuralWhereError(
            "A value list cannot contain a sub-query; use the sub-query alone"
        )
    if comparison in ARRAY_COMPARISONS:
        return LeafSql(
            comparison, comparison.value, f"({placeholders(offset, 1)})", [items]
        )
    if comparison not in LIST_COMPARISONS:
        rhs = wrap_rhs(placeholders(offset, 1), comparison)
        return LeafSql(comparison, comparison.value, rhs, [items])
    if not items:
        return _empty_list(comparison)
    return LeafSql(
        comparison,
        comparison.value,
        f"({placeholders(offset, len(items))})",
        list(items),
    )


class LeafRule(ABC):
    """Strategy interface for one kind of leaf value."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def matches(self, value: Any, ctx: LeafContext) -> bool: ...

    @abstractmethod
    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql: ...


# ---------------------------------------------------------------------------
# Built-in rules, in precedence order
# ---------------------------------------------------------------------------


class LhsOnlyRule(LeafRule):
    """``"x" IS UNKNOWN`` and friends: the value is ignored."""

    name = "lhs_only"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return ctx.comparison in LHS_ONLY_COMPARISONS

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        assert ctx.comparison is not None
        return LeafSql(ctx.comparison, ctx.comparison.value)


class NullRule(LeafRule):
    name = "null"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return value is None and ctx.comparison in (
            None,
            Comparison.EQUAL,
            Comparison.NOT_EQUAL,
        )

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        if ctx.comparison is Comparison.NOT_EQUAL:
            return LeafSql(Comparison.NOT_EQUAL, "IS NOT", "NULL")
        return LeafSql(Comparison.EQUAL, "IS", "NULL")


class NotNullRule(LeafRule):
    name = "not_null"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return value is Sentinel.NOT_NULL

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        if ctx.comparison is Comparison.NOT_EQUAL:
            return LeafSql(Comparison.NOT_EQUAL, "IS", "NULL")
        if ctx.comparison not in (None, Comparison.EQUAL):
            raise StructuralWhereError(
                f"NOT_NULL cannot be used with comparison {ctx.comparison.value}",
                ctx.field_key,
            )
        return LeafSql(Comparison.EQUAL, "IS NOT", "NULL")


class SentinelRule(LeafRule):
    """``NOW`` renders unbound as ``NOW()``."""

    name = "sentinel"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return isinstance(value, Sentinel)

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        comparison = ctx.comparison or Comparison.EQUAL
        return LeafSql(comparison, comparison.value, wrap_rhs(value.value, comparison))


class ValueListRule(LeafRule):
    name = "value_list"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return is_value_list(value)

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        comparison = ctx.comparison
        if comparison not in LIST_COMPARISONS and comparison not in ARRAY_COMPARISONS:
            comparison = Comparison.IN
        return _bind_list(list(value), comparison, ctx.bind_params_used)


class SqlValueRule(LeafRule):
    name = "sql_value"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return isinstance(value, SqlValue)

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        inner = value.get_value()
        comparison = value.comparison or ctx.comparison

        if comparison in LHS_ONLY_COMPARISONS:
            return LeafSql(comparison, comparison.value)

        inner_ctx = LeafContext(
            ctx.field_key, ctx.field, comparison, ctx.bind_params_used
        )
        if isinstance(inner, SqlRenderable):
            return SubQueryRule().splice(inner, ctx.bind_params_used, value.comparison)

        for rule in (NullRule(), NotNullRule(), SentinelRule()):
            if rule.matches(inner, inner_ctx):
                return rule.resolve(inner, inner_ctx)

        comparison = comparison or Comparison.EQUAL
        if value.bind:
            if is_value_list(inner):
                return _bind_list(list(inner), comparison, ctx.bind_params_used)
            return LeafSql(
                comparison,
                comparison.value,
                wrap_rhs(placeholders(ctx.bind_params_used, 1), comparison),
                [inner],
            )

        if is_value_list(inner):
            if not inner and comparison in LIST_COMPARISONS:
                return _empty_list(comparison)
            rhs = ", ".join(self._inline(item, value.quote) for item in inner)
            return LeafSql(comparison, comparison.value, f"({rhs})")
        return LeafSql(
            comparison,
            comparison.value,
            wrap_rhs(self._inline(inner, value.quote), comparison),
        )

    @staticmethod
    def _inline(inner: Any, quote: bool) -> str:
        if isinstance(inner, Sentinel):
            return inner.value
        if quote:
            return quote_literal(inner)
        return "NULL" if inner is None else str(inner)


class SubQueryRule(LeafRule):
    """Anything renderable is spliced in; defaults to ``IN``."""

    name = "sub_query"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return isinstance(value, SqlRenderable)

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        return self.splice(value, ctx.bind_params_used)

    def splice(
        self,
        value: SqlRenderable,
        bind_params_used: int,
        comparison: Comparison | None = None,
    ) -> LeafSql:
        """An explicit comparison wins over the sub-query's own."""
        rendered = _render_subquery(value, bind_params_used)
        comparison = comparison or rendered.comparison or Comparison.IN
        return LeafSql(
            comparison, comparison.value, f"({rendered.query})", list(rendered.values)
        )


class ScalarRule(LeafRule):
    name = "scalar"

    def matches(self, value: Any, ctx: LeafContext) -> bool:
        return True

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        comparison = ctx.comparison or Comparison.EQUAL
        return LeafSql(
            comparison,
            comparison.value,
            wrap_rhs(placeholders(ctx.bind_params_used, 1), comparison),
            [value],
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class LeafRuleRegistry:
    """Ordered collection of ``LeafRule`` instances; first match wins."""

    def __init__(self) -> None:
        self._rules: list[LeafRule] = []

    def register(self, rule: LeafRule, *, before: str | None = None) -> None:
        if before is None:
            self._rules.append(rule)
            return
        index = next(
            (i for i, r in enumerate(self._rules) if r.name == before),
            len(self._rules),
        )
        self._rules.insert(index, rule)

    def register_all(self, *rules: LeafRule) -> None:
        for rule in rules:
            self.register(rule)

    def unregister(self, name: str) -> None:
        self._rules = [r for r in self._rules if r.name != name]

    @property
    def rule_names(self) -> list[str]:
        return [r.name for r in self._rules]

    def resolve(self, value: Any, ctx: LeafContext) -> LeafSql:
        for rule in self._rules:
            if rule.matches(value, ctx):
                return rule.resolve(value, ctx)
        raise StructuralWhereError(
            f"No rule can render value {value!r}", ctx.field_key
        )


def build_default_leaf_registry() -> LeafRuleRegistry:
    """Create a registry with all built-in leaf rules."""
    registry = LeafRuleRegistry()
    registry.register_all(
        LhsOnlyRule(),
        NullRule(),
        NotNullRule(),
        SentinelRule(),
        ValueListRule(),
        SqlValueRule(),
        SubQueryRule(),
        ScalarRule(),
    )
    return registry


DEFAULT_LEAF_RULES = build_default_leaf_registry()
