"""SQL dialects the compiler can target.

clickhouse is the production store and the default. duckdb exists so the whole
pipeline can run locally and in tests against an embedded database - it gets
the same query shapes with duckdb spellings.

each aggregate and operator token maps to a fragment template here. a token
that has no template cannot be rendered, which is what the compiler turns into
UnsupportedAggregate / UnsupportedOperator.
"""

from dataclasses import dataclass, field
from enum import Enum

from querygate.models.query import AggregateFunction, FilterOperator, TimeUnit


class ParamType(str, Enum):
    """Parameter types, named the way clickhouse spells them."""

    STRING = "String"
    FLOAT = "Float64"
    STRING_ARRAY = "Array(String)"


# fragments shared by both dialects; {field} is a registry column, {param} a placeholder
_COMMON_OPERATORS: dict[FilterOperator, str] = {
    FilterOperator.EQ: "{field} = {param}",
    FilterOperator.NE: "{field} != {param}",
    FilterOperator.GT: "{field} > {param}",
    FilterOperator.LT: "{field} < {param}",
    FilterOperator.GTE: "{field} >= {param}",
    FilterOperator.LTE: "{field} <= {param}",
    FilterOperator.CONTAINS: "{field} LIKE {param}",
    FilterOperator.NOT_CONTAINS: "{field} NOT LIKE {param}",
}

_COMMON_AGGREGATES: dict[AggregateFunction, str] = {
    AggregateFunction.COUNT: "count({field})",
    AggregateFunction.SUM: "sum({field})",
    AggregateFunction.AVG: "avg({field})",
    AggregateFunction.MAX: "max({field})",
    AggregateFunction.MIN: "min({field})",
}

OPERATOR_PARAM_TYPES: dict[FilterOperator, ParamType] = {
    FilterOperator.EQ: ParamType.STRING,
    FilterOperator.NE: ParamType.STRING,
    FilterOperator.GT: ParamType.FLOAT,
    FilterOperator.LT: ParamType.FLOAT,
    FilterOperator.GTE: ParamType.FLOAT,
    FilterOperator.LTE: ParamType.FLOAT,
    FilterOperator.CONTAINS: ParamType.STRING,
    FilterOperator.NOT_CONTAINS: ParamType.STRING,
    FilterOperator.STARTS_WITH: ParamType.STRING,
    FilterOperator.IN: ParamType.STRING_ARRAY,
    FilterOperator.NOT_IN: ParamType.STRING_ARRAY,
}


@dataclass(frozen=True)
class Dialect:
    """How one backend spells the handful of constructs the compiler emits."""

    name: str
    quote_char: str
    count_all: str
    aggregates: dict[AggregateFunction, str]
    operators: dict[FilterOperator, str]
    time_buckets: dict[TimeUnit, str]
    datetime_template: str  # {param} and {tz}
    binds_timezone: bool = True
    backslash_escapes: bool = False  # clickhouse reads \ as an escape inside quoted names
    param_casts: dict[ParamType, str] = field(default_factory=dict)

    def placeholder(self, name: str, param_type: ParamType) -> str:
        raise NotImplementedError

    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier, doubling any embedded quote character."""
        q = self.quote_char
        if self.backslash_escapes:
            identifier = identifier.replace("\\", "\\\\")
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def aggregate_template(self, aggregate: AggregateFunction | str) -> str | None:
        return self.aggregates.get(aggregate)

    def operator_template(self, operator: FilterOperator | str) -> str | None:
        return self.operators.get(operator)


class ClickHouseDialect(Dialect):
    def placeholder(self, name: str, param_type: ParamType) -> str:
        return "{" + f"{name}:{param_type.value}" + "}"


class DuckDBDialect(Dialect):
    def placeholder(self, name: str, param_type: ParamType) -> str:
        cast = self.param_casts.get(param_type)
        if cast:
            return f"CAST(${name} AS {cast})"
        return f"${name}"


CLICKHOUSE = ClickHouseDialect(
    name="clickhouse",
    quote_char="`",
    count_all="count()",
    aggregates={**_COMMON_AGGREGATES, AggregateFunction.UNIQ: "uniq({field})"},
    operators={
        **_COMMON_OPERATORS,
        FilterOperator.STARTS_WITH: "startsWith({field}, {param})",
        FilterOperator.IN: "{field} IN {param}",
        FilterOperator.NOT_IN: "{field} NOT IN {param}",
    },
    time_buckets={
        TimeUnit.HOUR: "toStartOfHour({field}, {tz})",
        TimeUnit.DAY: "toDate({field}, {tz})",
    },
    datetime_template="parseDateTimeBestEffort({param}, {tz})",
    backslash_escapes=True,
)

# duckdb bounds are read as utc timestamps, so the timezone is never bound
DUCKDB = DuckDBDialect(
    name="duckdb",
    quote_char='"',
    count_all="count(*)",
    aggregates={**_COMMON_AGGREGATES, AggregateFunction.UNIQ: "count(DISTINCT {field})"},
    operators={
        **_COMMON_OPERATORS,
        FilterOperator.STARTS_WITH: "starts_with({field}, {param})",
        FilterOperator.IN: "list_contains({param}, {field})",
        FilterOperator.NOT_IN: "NOT list_contains({param}, {field})",
    },
    time_buckets={
        TimeUnit.HOUR: "date_trunc('hour', {field})",
        TimeUnit.DAY: "date_trunc('day', {field})",
    },
    datetime_template="CAST({param} AS TIMESTAMP)",
    binds_timezone=False,
    param_casts={ParamType.FLOAT: "DOUBLE", ParamType.STRING_ARRAY: "VARCHAR[]"},
)

DIALECTS: dict[str, Dialect] = {d.name: d for d in (CLICKHOUSE, DUCKDB)}


def get_dialect(name: str) -> Dialect:
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown dialect: {name}. Use one of: {', '.join(DIALECTS)}"
        ) from None
