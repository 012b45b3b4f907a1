"""
Exception hierarchy with fuzzy-match suggestions.

All exceptions inherit from ``SuppleSqlError`` and provide
``to_dict()`` for API-friendly error responses.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class SuppleSqlError(Exception):
    """Base exception for all supple-sql errors."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class MissingRequiredArgError(SuppleSqlError):
    """A required argument was not supplied."""

    def __init__(self, arg_name: str) -> None:
        self.arg_name = arg_name
        super().__init__(f"Missing required argument: {arg_name}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "MISSING_REQUIRED_ARG",
            "message": str(self),
            "arg": self.arg_name,
        }


class FieldNotFoundError(SuppleSqlError):
    """
    Unknown field key on a record type.

    Uses fuzzy matching to suggest similar declared field keys.

    Example error message::

        Invalid field 'aNumbr' on 'QueryTestRecord'.
        Did you mean one of these?
          • aNumber

        Available fields: aFlag, aNumber, email, id, optionalAt, ...
    """

    def __init__(
        self,
        invalid_field: str,
        record_name: str,
        available_fields: list[str],
        cutoff: float = 0.6,
    ) -> None:
        self.invalid_field = invalid_field
        self.record_name = record_name
        self.available_fields = available_fields
        self.suggestions = get_close_matches(
            invalid_field, available_fields, n=5, cutoff=cutoff
        )
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        lines = [f"Invalid field '{self.invalid_field}' on '{self.record_name}'."]
        if self.suggestions:
            lines.append("Did you mean one of these?")
            for s in self.suggestions:
                lines.append(f"  • {s}")

        sorted_fields = sorted(self.available_fields)
        preview = ", ".join(sorted_fields[:15])
        if len(sorted_fields) > 15:
            preview += ", ..."
        lines.append(f"Available fields: {preview}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "FIELD_NOT_FOUND",
            "field": self.invalid_field,
            "record": self.record_name,
            "suggestions": self.suggestions,
        }


class StructuralWhereError(SuppleSqlError):
    """A condition tree has a shape the where compiler cannot express."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "STRUCTURAL_WHERE_ERROR",
            "message": self.message,
            "field": self.field,
        }


# ---------------------------------------------------------------------------
# Query engine
# ---------------------------------------------------------------------------


class QueryError(SuppleSqlError):
    """Misuse of a RecordQuery."""


class IncompatibleOutputSpecifiedError(QueryError):
    def __init__(self, output: str, returns: Any) -> None:
        self.output = output
        self.returns = returns
        super().__init__(
            f"Output type '{output}' is incompatible with returns={returns!r}"
        )


class InvalidOutputTypeError(QueryError):
    def __init__(self, output: Any, valid: list[str]) -> None:
        self.output = output
        self.valid = valid
        super().__init__(
            f"Invalid output type {output!r}. Valid output types: {', '.join(valid)}"
        )


class UnavailableInStreamModeError(QueryError):
    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"{what} is unavailable in stream mode")


class InvalidOptionCombinationError(QueryError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class QueryNotLoadedIterationError(QueryError):
    def __init__(self) -> None:
        super().__init__("Query must be run before iterating over its rows")


class AsyncIterationUnavailableError(QueryError):
    def __init__(self) -> None:
        super().__init__("Async iteration is only available in stream mode")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class RecordError(SuppleSqlError):
    """Misuse of a Record type or instance."""


class RecordTypeRequiredError(RecordError):
    def __init__(self, got: Any) -> None:
        self.got = got
        super().__init__(f"A Record subclass is required, got {got!r}")


class RecordMissingPrimaryKeyError(RecordError):
    def __init__(self, record_name: str) -> None:
        self.record_name = record_name
        super().__init__(f"{record_name} declares no primary key fields")


class PrimaryKeyValueMissingError(RecordError):
    def __init__(self, record_name: str, field: str) -> None:
        self.record_name = record_name
        self.field = field
        super().__init__(f"{record_name} is missing a value for primary key '{field}'")


class IncorrectFieldsError(RecordError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Pools, connections and transactions
# ---------------------------------------------------------------------------


class PoolError(SuppleSqlError):
    """Connection acquisition or transaction handling failed."""


class NoPoolSetError(PoolError):
    def __init__(self, name: str = "default") -> None:
        self.name = name
        super().__init__(f"No pool registered under '{name}'")


class FailedToFindUsablePoolConnectionError(PoolError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"No usable pool connection found after {attempts} attempts")


class AutoPrunedUnusablePoolConnectionError(PoolError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Pruned unusable pool connection: {reason}")


class ImplicitNestedTransactionError(PoolError):
    def __init__(self) -> None:
        super().__init__(
            "Connection is already in a transaction; pass allow_nested=True to join it"
        )


class StatementTimeoutError(PoolError):
    def __init__(self) -> None:
        super().__init__("Statement timed out")
