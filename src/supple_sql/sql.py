"""Identifier and literal quoting using SQLAlchemy's PostgreSQL dialect."""

from __future__ import annotations

from typing import Any

from sqlalchemy import literal
from sqlalchemy.dialects import postgresql

_DIALECT = postgresql.dialect()


def quote_identifier(name: str) -> str:
    """Always quote, doubling embedded quote characters."""
    return _DIALECT.identifier_preparer.quote_identifier(name)


def quote_literal(value: Any) -> str:
    """Render a Python value as an inline PostgreSQL literal."""
    if value is None:
        return "NULL"
    compiled = literal(value).compile(
        dialect=_DIALECT, compile_kwargs={"literal_binds": True}
    )
    return str(compiled)


def join_with_connective(parts: list[str], connective: str, siblings: int) -> str:
    """
    Join compiled parts, parenthesizing only when the group has more than
    one part and is itself joined with siblings.
    """
    parts = [p for p in parts if p]
    joined = f" {connective} ".join(parts)
    if len(parts) > 1 and siblings > 0:
        return f"({joined})"
    return joined
