"""Where compiler: recursive condition trees to parameterized SQL."""

from .compiler import WhereCompiler, compile_where
from .connectives import And, ConnectedWheres, NodeKind, Or, and_, node_kind, or_
from .leaves import (
    DEFAULT_LEAF_RULES,
    LeafContext,
    LeafRule,
    LeafRuleRegistry,
    LeafSql,
    build_default_leaf_registry,
)

__all__ = [
    "DEFAULT_LEAF_RULES",
    "And",
    "ConnectedWheres",
    "LeafContext",
    "LeafRule",
    "LeafRuleRegistry",
    "LeafSql",
    "NodeKind",
    "Or",
    "WhereCompiler",
    "and_",
    "build_default_leaf_registry",
    "compile_where",
    "node_kind",
    "or_",
]
