"""
supple-sql: a small PostgreSQL record mapper.

Declare ``Record`` subclasses, filter them with nested condition trees,
and run the resulting ``RecordQuery`` buffered or as a stream.
"""

from .comparisons import (
    all_,
    any_,
    distinct_from,
    equal,
    exists,
    greater,
    greater_equal,
    ilike,
    in_,
    iregex,
    less,
    less_equal,
    like,
    not_all,
    not_any,
    not_distinct_from,
    not_equal,
    not_exists,
    not_ilike,
    not_in,
    not_iregex,
    not_like,
    not_regex,
    not_similar_to,
    not_unknown,
    raw,
    regex,
    similar_to,
    unknown,
)
from .config import PoolConfig, create_pool
from .connection import (
    PoolRegistry,
    connected,
    get_default_pool,
    get_usable_connection,
    pools,
    query,
    set_default_pool,
    transaction,
)
from .constants import (
    NOT_NULL,
    NOW,
    Comparison,
    Connective,
    FieldType,
    OutputType,
    Sentinel,
    SortDirection,
)
from .exceptions import (
    AsyncIterationUnavailableError,
    AutoPrunedUnusablePoolConnectionError,
    FailedToFindUsablePoolConnectionError,
    FieldNotFoundError,
    ImplicitNestedTransactionError,
    IncompatibleOutputSpecifiedError,
    IncorrectFieldsError,
    InvalidOptionCombinationError,
    InvalidOutputTypeError,
    MissingRequiredArgError,
    NoPoolSetError,
    PoolError,
    PrimaryKeyValueMissingError,
    QueryError,
    QueryNotLoadedIterationError,
    RecordError,
    RecordMissingPrimaryKeyError,
    RecordTypeRequiredError,
    StatementTimeoutError,
    StructuralWhereError,
    SuppleSqlError,
    UnavailableInStreamModeError,
)
from .fields import FieldSpec, to_snake
from .migrations import run_migrations
from .record import Record
from .record_query import RecordQuery
from .sql import quote_identifier, quote_literal
from .stream import RecordStream
from .values import UNSET, RawSql, RenderedSql, SqlRenderable, SqlValue
from .where import And, ConnectedWheres, Or, and_, compile_where, or_

__all__ = [
    "NOT_NULL",
    "NOW",
    "UNSET",
    "And",
    "AsyncIterationUnavailableError",
    "AutoPrunedUnusablePoolConnectionError",
    "Comparison",
    "ConnectedWheres",
    "Connective",
    "FailedToFindUsablePoolConnectionError",
    "FieldNotFoundError",
    "FieldSpec",
    "FieldType",
    "ImplicitNestedTransactionError",
    "IncompatibleOutputSpecifiedError",
    "IncorrectFieldsError",
    "InvalidOptionCombinationError",
    "InvalidOutputTypeError",
    "MissingRequiredArgError",
    "NoPoolSetError",
    "Or",
    "OutputType",
    "PoolConfig",
    "PoolError",
    "PoolRegistry",
    "PrimaryKeyValueMissingError",
    "QueryError",
    "QueryNotLoadedIterationError",
    "RawSql",
    "Record",
    "RecordError",
    "RecordMissingPrimaryKeyError",
    "RecordQuery",
    "RecordStream",
    "RecordTypeRequiredError",
    "RenderedSql",
    "Sentinel",
    "SortDirection",
    "SqlRenderable",
    "SqlValue",
    "StatementTimeoutError",
    "StructuralWhereError",
    "SuppleSqlError",
    "UnavailableInStreamModeError",
    "all_",
    "and_",
    "any_",
    "compile_where",
    "connected",
    "create_pool",
    "distinct_from",
    "equal",
    "exists",
    "get_default_pool",
    "get_usable_connection",
    "greater",
    "greater_equal",
    "ilike",
    "in_",
    "iregex",
    "less",
    "less_equal",
    "like",
    "not_all",
    "not_any",
    "not_distinct_from",
    "not_equal",
    "not_exists",
    "not_ilike",
    "not_in",
    "not_iregex",
    "not_like",
    "not_regex",
    "not_similar_to",
    "not_unknown",
    "or_",
    "pools",
    "query",
    "quote_identifier",
    "quote_literal",
    "raw",
    "regex",
    "run_migrations",
    "set_default_pool",
    "similar_to",
    "to_snake",
    "transaction",
    "unknown",
]
