"""Tests for exceptions module."""

from __future__ import annotations

from supple_sql import (
    AutoPrunedUnusablePoolConnectionError,
    FieldNotFoundError,
    IncompatibleOutputSpecifiedError,
    MissingRequiredArgError,
    PoolError,
    QueryError,
    RecordError,
    RecordTypeRequiredError,
    StatementTimeoutError,
    StructuralWhereError,
    SuppleSqlError,
    UnavailableInStreamModeError,
)

# -- FieldNotFoundError ------------------------------------------------------


def test_field_not_found_fuzzy():
    err = FieldNotFoundError(
        invalid_field="aNumbr",
        record_name="QueryTestRecord",
        available_fields=["id", "aNumber", "aFlag"],
    )
    assert "aNumbr" in str(err)
    assert "aNumber" in str(err)  # fuzzy suggestion


def test_field_not_found_to_dict():
    err = FieldNotFoundError("emial", "QueryTestRecord", ["email", "id"])
    d = err.to_dict()
    assert d["error"] == "FIELD_NOT_FOUND"
    assert d["field"] == "emial"
    assert d["record"] == "QueryTestRecord"
    assert "email" in d["suggestions"]


def test_field_not_found_long_field_list_is_truncated():
    fields = [f"field{i:02d}" for i in range(20)]
    err = FieldNotFoundError("zzz", "Wide", fields)
    assert err.suggestions == []
    assert str(err).endswith(", ...")


# -- Others ------------------------------------------------------------------


def test_structural_where_error_to_dict():
    err = StructuralWhereError("Nested field map", field="id")
    assert err.to_dict() == {
        "error": "STRUCTURAL_WHERE_ERROR",
        "message": "Nested field map",
        "field": "id",
    }


def test_missing_required_arg_to_dict():
    d = MissingRequiredArgError("callback").to_dict()
    assert d["error"] == "MISSING_REQUIRED_ARG"
    assert d["arg"] == "callback"


def test_default_to_dict_uses_class_name():
    d = StatementTimeoutError().to_dict()
    assert d == {"error": "StatementTimeoutError", "message": "Statement timed out"}


def test_hierarchy():
    assert issubclass(IncompatibleOutputSpecifiedError, QueryError)
    assert issubclass(UnavailableInStreamModeError, QueryError)
    assert issubclass(RecordTypeRequiredError, RecordError)
    assert issubclass(AutoPrunedUnusablePoolConnectionError, PoolError)
    for exc in (QueryError, RecordError, PoolError, StructuralWhereError):
        assert issubclass(exc, SuppleSqlError)


def test_messages_carry_context():
    assert "returns='id'" in str(IncompatibleOutputSpecifiedError("object", "id"))
    assert str(UnavailableInStreamModeError("len()")) == (
        "len() is unavailable in stream mode"
    )
