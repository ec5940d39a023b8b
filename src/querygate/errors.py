"""Exception hierarchy for querygate.

every failure the engine can report derives from QueryGateError so the http
layer and the batch orchestrator can catch one type and still keep the kind.
"""

from enum import Enum


class ValidationErrorKind(str, Enum):
    """Reasons a custom query config can be rejected."""

    UNKNOWN_TABLE = "UnknownTable"
    EMPTY_SELECTS = "EmptySelects"
    TOO_MANY_SELECTS = "TooManySelects"
    WILDCARD_REQUIRES_COUNT = "WildcardRequiresCount"
    UNKNOWN_COLUMN = "UnknownColumn"
    AGGREGATE_NOT_ALLOWED = "AggregateNotAllowed"
    TOO_MANY_FILTERS = "TooManyFilters"
    UNKNOWN_FILTER_COLUMN = "UnknownFilterColumn"
    FILTER_NOT_ALLOWED = "FilterNotAllowed"
    TOO_MANY_GROUP_BY = "TooManyGroupBy"
    UNKNOWN_GROUP_BY_COLUMN = "UnknownGroupByColumn"


class CompilationErrorKind(str, Enum):
    UNSUPPORTED_AGGREGATE = "UnsupportedAggregate"
    UNSUPPORTED_OPERATOR = "UnsupportedOperator"


class QueryGateError(Exception):
    """Base error for everything raised by querygate."""

    kind: str = "QueryGateError"


class DefinitionError(QueryGateError, ValueError):
    """Raised when table or catalog definitions are malformed."""

    kind = "DefinitionError"


class QueryValidationError(QueryGateError):
    """Raised when a custom query config fails validation.

    field is the config section that failed (table, selects, filters, groupBy)
    and column the offending column name when there is one.
    """

    def __init__(
        self,
        kind: ValidationErrorKind,
        message: str,
        field: str | None = None,
        column: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind.value
        self.error_kind = kind
        self.field = field
        self.column = column


class QueryCompilationError(QueryGateError):
    """Raised when the compiler meets a token it cannot render."""

    def __init__(self, kind: CompilationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind.value
        self.error_kind = kind


class UnknownQueryTypeError(QueryGateError, KeyError):
    """Raised when a batch parameter names no catalog entry."""

    kind = "UnknownQueryType"

    def __init__(self, query_type: str) -> None:
        super().__init__(f"Unknown query type: {query_type}")
        self.query_type = query_type

    def __str__(self) -> str:
        # KeyError repr()s its argument, which would wrap the message in quotes
        return self.args[0]


class CatalogFilterError(QueryGateError):
    """Raised when a customizable catalog entry gets a filter it does not allow."""

    kind = "FilterNotAllowed"


class QueryExecutionError(QueryGateError):
    """Raised when the execution backend fails."""

    kind = "ExecutionError"
