"""
Where compiler: condition tree -> parameterized SQL.

Usage::

    rendered = compile_where(
        QueryTestRecord.fields,
        [{"aNumber": or_(1, 2)}, {"aFlag": NOT_NULL}],
    )
    rendered.query   # '("a_number" = $1 OR "a_number" = $2) AND "a_flag" IS NOT NULL'
    rendered.values  # [1, 2]

Numbering is global to one call: every nested group and sub-query is
compiled with the count of values bound before it, so placeholders stay
contiguous from ``bind_params_used + 1``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..constants import (
    RHS_ONLY_COMPARISONS,
    TEXT_COMPARISONS,
    Comparison,
    Connective,
)
from ..exceptions import StructuralWhereError
from ..fields import FieldRegistry, get_field, to_snake
from ..sql import join_with_connective, quote_identifier
from ..values import UNSET, RenderedSql, SqlRenderable, SqlValue
from .connectives import ConnectedWheres, NodeKind, node_kind
from .leaves import DEFAULT_LEAF_RULES, LeafContext, LeafRuleRegistry

logger = logging.getLogger(__name__)


class WhereCompiler:
    """Compiles condition trees against one record type's field registry."""

    def __init__(
        self,
        fields: FieldRegistry,
        *,
        record_name: str = "Record",
        rules: LeafRuleRegistry | None = None,
    ) -> None:
        self.fields = fields
        self.record_name = record_name
        self.rules = rules or DEFAULT_LEAF_RULES

    def compile(
        self,
        wheres: Any,
        *,
        comparison: Comparison | None = None,
        connective: Connective = Connective.AND,
        bind_params_used: int = 0,
        siblings: int = 0,
        lhs: str | None = None,
    ) -> RenderedSql:
        rendered = self._compile_node(
            wheres, comparison, connective, bind_params_used, siblings, lhs
        )
        if not rendered.query:
            return RenderedSql("true", rendered.values)
        return rendered

    # -- node dispatch ---------------------------------------------------

    def _compile_node(
        self,
        node: Any,
        comparison: Comparison | None,
        connective: Connective,
        offset: int,
        siblings: int,
        lhs: str | None,
    ) -> RenderedSql:
        if lhs is not None:
            return self._compile_value(lhs, node, comparison, offset, siblings)

        kind = node_kind(node)
        if kind in (NodeKind.CONNECTIVE, NodeKind.SEQUENCE):
            return self._compile_group(node, comparison, offset, siblings, None)
        if kind is NodeKind.FIELD_MAP:
            return self._compile_field_map(
                node, comparison, connective, offset, siblings
            )
        return self._compile_bare_value(node, comparison, offset)

    def _compile_group(
        self,
        node: Any,
        comparison: Comparison | None,
        offset: int,
        siblings: int,
        lhs: str | None,
    ) -> RenderedSql:
        if isinstance(node, ConnectedWheres):
            children = node.wheres
            group_connective = node.connective
            comparison = node.comparison or comparison
        else:
            children = list(node)
            group_connective = Connective.AND

        # A lone child takes the group's place, so it inherits its siblings.
        child_siblings = siblings if len(children) == 1 else len(children) - 1

        parts: list[str] = []
        values: list[Any] = []
        for child in children:
            rendered = self._compile_node(
                child,
                comparison,
                Connective.AND,
                offset + len(values),
                child_siblings,
                lhs,
            )
            parts.append(rendered.query)
            values.extend(rendered.values)

        return RenderedSql(
            join_with_connective(parts, group_connective.value, siblings), values
        )

    def _compile_field_map(
        self,
        node: Mapping[str, Any],
        comparison: Comparison | None,
        connective: Connective,
        offset: int,
        siblings: int,
    ) -> RenderedSql:
        entry_siblings = siblings + len(node) - 1

        parts: list[str] = []
        values: list[Any] = []
        for key, value in node.items():
            get_field(self.fields, key, self.record_name)
            rendered = self._compile_value(
                key, value, comparison, offset + len(values), entry_siblings
            )
            parts.append(rendered.query)
            values.extend(rendered.values)

        query = join_with_connective(parts, connective.value, siblings)
        return RenderedSql(query or "true", values)

    def _compile_value(
        self,
        key: str,
        value: Any,
        comparison: Comparison | None,
        offset: int,
        siblings: int,
    ) -> RenderedSql:
        kind = node_kind(value)
        if kind is NodeKind.FIELD_MAP:
            raise StructuralWhereError(
                f"Field '{key}' of {self.record_name} has a nested field map as "
                "its value; combine field maps with and_() / or_() instead",
                key,
            )
        if kind is NodeKind.CONNECTIVE:
            return self._compile_group(value, comparison, offset, siblings, key)
        return self._compile_leaf(key, value, comparison, offset)

    # -- leaves ----------------------------------------------------------

    def _compile_leaf(
        self,
        key: str,
        value: Any,
        comparison: Comparison | None,
        offset: int,
    ) -> RenderedSql:
        spec = get_field(self.fields, key, self.record_name)
        if value is UNSET:
            logger.warning(
                "Skipped unset value for %s while processing wheres for %s",
                key,
                self.record_name,
            )
            return RenderedSql("")

        leaf = self.rules.resolve(value, LeafContext(key, spec, comparison, offset))
        if leaf.comparison in RHS_ONLY_COMPARISONS:
            raise StructuralWhereError(
                f"{leaf.comparison.value} takes no left-hand side but was used "
                f"on field '{key}'; place it outside any field map",
                key,
            )

        column = leaf.lhs
        if column is None:
            column = quote_identifier(spec.name or to_snake(key))
            if leaf.comparison in TEXT_COMPARISONS and not spec.is_text:
                column += "::text"

        query = " ".join(part for part in (column, leaf.operator, leaf.rhs) if part)
        return RenderedSql(query, leaf.values)

    def _compile_bare_value(
        self, value: Any, comparison: Comparison | None, offset: int
    ) -> RenderedSql:
        subquery = value
        if isinstance(value, SqlValue):
            comparison = value.comparison or comparison
            subquery = value.get_value()

        if comparison in RHS_ONLY_COMPARISONS and isinstance(subquery, SqlRenderable):
            rendered = RenderedSql.coerce(
                subquery.get_sql(is_subquery=True, bind_params_used=offset)
            )
            return RenderedSql(
                f"{comparison.value} ({rendered.query})", list(rendered.values)
            )

        raise StructuralWhereError(
            f"Value {value!r} has no field to compare against; "
            f"wrap it in a field map such as {{'field': value}}"
        )


def compile_where(
    fields: FieldRegistry,
    wheres: Any,
    *,
    record_name: str = "Record",
    comparison: Comparison | None = None,
    connective: Connective = Connective.AND,
    bind_params_used: int = 0,
    siblings: int = 0,
    lhs: str | None = None,
    rules: LeafRuleRegistry | None = None,
) -> RenderedSql:
    """Compile a condition tree into ``RenderedSql``; empty trees give ``true``."""
    compiler = WhereCompiler(fields, record_name=record_name, rules=rules)
    return compiler.compile(
        wheres,
        comparison=comparison,
        connective=connective,
        bind_params_used=bind_params_used,
        siblings=siblings,
        lhs=lhs,
    )
