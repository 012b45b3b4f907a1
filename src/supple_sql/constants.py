"""Closed vocabularies shared by the compiler, the query engine and records."""

from __future__ import annotations

from enum import Enum

IDENTIFIER_QUOTE = '"'
STATEMENT_TIMEOUT_SQLSTATE = "57014"
DEFAULT_STREAM_BATCH_SIZE = 100


class Comparison(str, Enum):
    """PostgreSQL comparison operators usable in where clauses."""

    # Standard comparison
    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER = ">"
    GREATER_EQUAL = ">="
    LESS = "<"
    LESS_EQUAL = "<="
    DISTINCT_FROM = "IS DISTINCT FROM"
    NOT_DISTINCT_FROM = "IS NOT DISTINCT FROM"

    # Set / sub-query
    IN = "IN"
    NOT_IN = "NOT IN"
    ANY = "= ANY"
    NOT_ANY = "!= ANY"
    ALL = "= ALL"
    NOT_ALL = "!= ALL"
    EXISTS = "EXISTS"
    NOT_EXISTS = "NOT EXISTS"

    # Pattern matching
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    ILIKE = "ILIKE"
    NOT_ILIKE = "NOT ILIKE"
    REGEX = "~"
    NOT_REGEX = "!~"
    IREGEX = "~*"
    NOT_IREGEX = "!~*"
    SIMILAR_TO = "SIMILAR TO"
    NOT_SIMILAR_TO = "NOT SIMILAR TO"

    # Boolean tests
    UNKNOWN = "IS UNKNOWN"
    NOT_UNKNOWN = "IS NOT UNKNOWN"


# Right-hand side is always wrapped in parentheses.
PARENS_COMPARISONS = frozenset(
    {
        Comparison.ALL,
        Comparison.ANY,
        Comparison.EXISTS,
        Comparison.IN,
        Comparison.NOT_ALL,
        Comparison.NOT_ANY,
        Comparison.NOT_EXISTS,
        Comparison.NOT_IN,
    }
)

# Bind lists element-wise: "x" IN ($1, $2).
LIST_COMPARISONS = frozenset({Comparison.IN, Comparison.NOT_IN})

# Bind lists as one array parameter: "x" = ANY ($1).
ARRAY_COMPARISONS = frozenset(
    {Comparison.ANY, Comparison.NOT_ANY, Comparison.ALL, Comparison.NOT_ALL}
)

# Left-hand side is cast to text when the column is not already text.
TEXT_COMPARISONS = frozenset(
    {
        Comparison.ILIKE,
        Comparison.IREGEX,
        Comparison.LIKE,
        Comparison.NOT_ILIKE,
        Comparison.NOT_IREGEX,
        Comparison.NOT_LIKE,
        Comparison.NOT_REGEX,
        Comparison.NOT_SIMILAR_TO,
        Comparison.REGEX,
        Comparison.SIMILAR_TO,
    }
)

# No left-hand side: EXISTS (subquery).
RHS_ONLY_COMPARISONS = frozenset({Comparison.EXISTS, Comparison.NOT_EXISTS})

# No right-hand side: "x" IS UNKNOWN.
LHS_ONLY_COMPARISONS = frozenset({Comparison.UNKNOWN, Comparison.NOT_UNKNOWN})


class Connective(str, Enum):
    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OutputType(str, Enum):
    """Shape of the rows produced by a query."""

    RECORD = "record"
    OBJECT = "object"
    VALUE = "value"


class Sentinel(Enum):
    """Marker values with a fixed SQL rendering."""

    NOT_NULL = "NOT NULL"
    NOW = "NOW()"

    def __repr__(self) -> str:
        return self.name


NOT_NULL = Sentinel.NOT_NULL
NOW = Sentinel.NOW


class FieldType(str, Enum):
    """PostgreSQL column types understood by the field registry."""

    BIGINT = "bigint"
    BIGSERIAL = "bigserial"
    BIT = "bit"
    BIT_VARYING = "bit varying"
    BOOLEAN = "boolean"
    BOX = "box"
    BYTEA = "bytea"
    CHARACTER = "character"
    CHARACTER_VARYING = "character varying"
    CIDR = "cidr"
    CIRCLE = "circle"
    DATE = "date"
    DOUBLE_PRECISION = "double precision"
    INET = "inet"
    INTEGER = "integer"
    INTERVAL = "interval"
    JSON = "json"
    JSONB = "jsonb"
    LINE = "line"
    LSEG = "lseg"
    MACADDR = "macaddr"
    MACADDR8 = "macaddr8"
    MONEY = "money"
    NUMERIC = "numeric"
    PATH = "path"
    PG_LSN = "pg_lsn"
    PG_SNAPSHOT = "pg_snapshot"
    POINT = "point"
    POLYGON = "polygon"
    REAL = "real"
    SMALLINT = "smallint"
    SMALLSERIAL = "smallserial"
    SERIAL = "serial"
    TEXT = "text"
    TIME = "time"
    TIME_WITH_TIME_ZONE = "time with time zone"
    TIMESTAMP = "timestamp"
    TIMESTAMP_WITH_TIME_ZONE = "timestamp with time zone"
    TSQUERY = "tsquery"
    TSVECTOR = "tsvector"
    TXID_SNAPSHOT = "txid_snapshot"
    UUID = "uuid"
    XML = "xml"


TEXT_FIELD_TYPES = frozenset({FieldType.TEXT})
