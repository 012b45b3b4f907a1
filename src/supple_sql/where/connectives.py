"""Explicit AND / OR groups and condition-node classification."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from ..constants import Comparison, Connective


class ConnectedWheres:
    """
    A group of condition nodes joined by one connective.

    ``comparison`` is the default for bare values among the children;
    ``None`` inherits the parent's default.
    """

    connective: Connective = Connective.AND

    def __init__(self, *wheres: Any, comparison: Comparison | None = None) -> None:
        self.wheres = list(wheres)
        self.comparison = comparison

    def __repr__(self) -> str:
        args = ", ".join(repr(w) for w in self.wheres)
        if self.comparison is not None:
            args += f", comparison={self.comparison}"
        return f"{type(self).__name__}({args})"


class And(ConnectedWheres):
    connective = Connective.AND


class Or(ConnectedWheres):
    connective = Connective.OR


def and_(*wheres: Any, comparison: Comparison | None = None) -> And:
    return And(*wheres, comparison=comparison)


def or_(*wheres: Any, comparison: Comparison | None = None) -> Or:
    return Or(*wheres, comparison=comparison)


class NodeKind(str, Enum):
    CONNECTIVE = "connective"
    SEQUENCE = "sequence"
    FIELD_MAP = "field_map"
    VALUE = "value"


def node_kind(node: Any) -> NodeKind:
    if isinstance(node, ConnectedWheres):
        return NodeKind.CONNECTIVE
    if isinstance(node, (list, tuple)):
        return NodeKind.SEQUENCE
    if isinstance(node, Mapping):
        return NodeKind.FIELD_MAP
    return NodeKind.VALUE
