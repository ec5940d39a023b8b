"""Pydantic models for querygate."""

from querygate.models.batch import (
    BatchMeta,
    BatchResultEnvelope,
    BatchResultItem,
    DynamicQueryRequest,
    TenantContext,
)
from querygate.models.catalog import QueryCatalogEntry
from querygate.models.query import (
    AggregateFunction,
    CompiledQuery,
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQueryRequest,
    CustomQueryResponse,
    CustomQuerySelect,
    FilterOperator,
    TimeUnit,
)
from querygate.models.schema import ColumnDefinition, ColumnType, TableDefinition

__all__ = [
    "AggregateFunction",
    "BatchMeta",
    "BatchResultEnvelope",
    "BatchResultItem",
    "ColumnDefinition",
    "ColumnType",
    "CompiledQuery",
    "CustomQueryConfig",
    "CustomQueryFilter",
    "CustomQueryRequest",
    "CustomQueryResponse",
    "CustomQuerySelect",
    "DynamicQueryRequest",
    "FilterOperator",
    "QueryCatalogEntry",
    "TableDefinition",
    "TenantContext",
    "TimeUnit",
]
