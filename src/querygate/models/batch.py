"""Pydantic models for batch (dynamic) query requests and their envelopes."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from querygate.models.query import CustomQueryFilter, TimeUnit

Granularity = Literal["hourly", "daily", "hour", "day"]


class DynamicQueryRequest(BaseModel):
    """One request naming catalog entries to run for the same tenant and range."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None  # client correlation token, echoed back as queryId
    parameters: list[str]
    filters: list[CustomQueryFilter] = Field(default_factory=list)
    granularity: Granularity | None = None
    group_by: list[str] = Field(default_factory=list, alias="groupBy")
    limit: int | None = Field(default=None, ge=1)
    page: int | None = Field(default=None, ge=1)

    @property
    def time_unit(self) -> TimeUnit:
        if self.granularity in ("hourly", "hour"):
            return TimeUnit.HOUR
        return TimeUnit.DAY


class TenantContext(BaseModel):
    """Who the queries run for and over which range."""

    website_id: str
    start_date: str
    end_date: str
    timezone: str = "UTC"


class BatchResultItem(BaseModel):
    parameter: str
    success: bool
    data: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    # kept internally so a later api version can expose it; not on the wire today
    error_kind: str | None = Field(default=None, exclude=True)


class BatchMeta(BaseModel):
    parameters: list[str]
    total_parameters: int
    page: int
    limit: int
    filters_applied: int


class BatchResultEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query_id: str | None = Field(default=None, alias="queryId")
    data: list[BatchResultItem]
    meta: BatchMeta

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=False)
