"""Field registry: declared fields of a record type and their column names."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from .constants import TEXT_FIELD_TYPES, FieldType, SortDirection
from .exceptions import FieldNotFoundError
from .sql import quote_identifier

_UPPER = re.compile(r"([A-Z])")


def to_snake(key: str) -> str:
    """``aNumber`` -> ``a_number``; already-snake keys pass through."""
    if not key:
        return key
    key = key[0].lower() + key[1:]
    return _UPPER.sub(lambda m: "_" + m.group(1).lower(), key)


class FieldSpec(BaseModel):
    """One declared field of a record type."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: FieldType
    name: str | None = None
    primary_key: bool = False
    nullable: bool = True
    default: Any = None

    @property
    def is_text(self) -> bool:
        return self.type in TEXT_FIELD_TYPES

    @property
    def has_default(self) -> bool:
        return self.default is not None


FieldRegistry = Mapping[str, FieldSpec]


def coerce_fields(fields: Mapping[str, Any]) -> dict[str, FieldSpec]:
    """Validate raw field declarations (dicts or ``FieldSpec``) into specs."""
    return {
        key: spec if isinstance(spec, FieldSpec) else FieldSpec.model_validate(spec)
        for key, spec in fields.items()
    }


def get_field(fields: FieldRegistry, key: str, record_name: str) -> FieldSpec:
    try:
        return fields[key]
    except KeyError:
        raise FieldNotFoundError(key, record_name, list(fields)) from None


def get_field_db_name(fields: FieldRegistry, key: str, record_name: str) -> str:
    spec = get_field(fields, key, record_name)
    return spec.name or to_snake(key)


def parse_order_by(spec: Any) -> tuple[str, SortDirection]:
    """
    Normalize an order-by spec.

    Accepts ``"key"``, ``"-key"`` (descending) or ``(key, direction)``.
    """
    if isinstance(spec, str):
        if spec.startswith("-"):
            return spec[1:], SortDirection.DESC
        return spec, SortDirection.ASC
    key, direction = spec
    if isinstance(direction, str):
        direction = SortDirection(direction.lower())
    return key, SortDirection(direction)


def is_single_order_by(spec: Any) -> bool:
    """True for ``"key"`` or one ``(key, direction)`` pair, not a list of specs."""
    if isinstance(spec, str):
        return True
    if isinstance(spec, (tuple, list)) and len(spec) == 2:
        key, direction = spec
        if not isinstance(key, str):
            return False
        if isinstance(direction, SortDirection):
            return True
        return isinstance(direction, str) and direction.lower() in {
            d.value for d in SortDirection
        }
    return False


def format_order_by(
    fields: FieldRegistry, order_bys: list[tuple[str, SortDirection]], record_name: str
) -> str:
    return ", ".join(
        f"{quote_identifier(get_field_db_name(fields, key, record_name))} "
        f"{direction.value.upper()}"
        for key, direction in order_bys
    )
