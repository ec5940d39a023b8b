"""Pydantic models for custom queries and their results.

a custom query config describes *what* to aggregate, never *how*. it carries
no sql at all - only names that the validator checks against the registry and
tokens from closed enums.
"""

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

WILDCARD = "*"
DEFAULT_LIMIT = 1000
MAX_LIMIT = 10_000

ScalarValue = Union[str, int, float]
FilterValue = Union[ScalarValue, list[ScalarValue]]


class AggregateFunction(str, Enum):
    """Aggregates a select may apply. rendering lives in the dialect."""

    COUNT = "count"
    UNIQ = "uniq"
    SUM = "sum"
    AVG = "avg"
    MAX = "max"
    MIN = "min"

    @property
    def needs_aggregatable(self) -> bool:
        # count/uniq work on any column, the rest need numeric data
        return self not in (AggregateFunction.COUNT, AggregateFunction.UNIQ)


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    IN = "in"
    NOT_IN = "not_in"


class TimeUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"


class CustomQuerySelect(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str  # column name or "*"
    aggregate: AggregateFunction
    alias: str | None = None

    @property
    def resolved_alias(self) -> str:
        """Display name, defaulting to {aggregate}_{field} ("all" for the wildcard)."""
        if self.alias:
            return self.alias
        field_part = "all" if self.field == WILDCARD else self.field
        return f"{self.aggregate.value}_{field_part}"


class CustomQueryFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: FilterOperator
    value: FilterValue


class CustomQueryConfig(BaseModel):
    """The unit that is validated and compiled.

    the 10/20/5 size limits are not pydantic constraints - the validator
    enforces them so callers get a typed error kind back.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    table: str
    selects: list[CustomQuerySelect] = Field(default_factory=list)
    filters: list[CustomQueryFilter] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list, alias="groupBy")
    time_bucket: TimeUnit | None = Field(default=None, alias="timeBucket")


class CustomQueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: CustomQueryConfig
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    timezone: str = "UTC"
    limit: int | None = None


class CompiledQuery(BaseModel):
    """SQL text plus its bound parameters.

    params hold every value the query uses; the sql only references them by name.
    """

    model_config = ConfigDict(frozen=True)

    sql: str
    params: dict[str, Any]
    dialect: str


class CustomQueryResponse(BaseModel):
    success: bool
    data: list[dict[str, Any]] | None = None
    meta: dict[str, Any] | None = None
    error: str | None = None
