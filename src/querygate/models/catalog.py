"""Pydantic model for query catalog entries.

a catalog entry is a pre-approved query shape exposed under a short id
("top_pages", "countries", ...). callers can narrow it with filters but the
table, selects and grouping come from the definition file.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from querygate.errors import CatalogFilterError
from querygate.models.query import (
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQuerySelect,
    FilterOperator,
    TimeUnit,
)

logger = logging.getLogger(__name__)

# column excluded against the tenant's own domain by exclude_own_domain entries
REFERRER_FIELD = "referrer"


class QueryCatalogEntry(BaseModel):
    """A named query shape.

    build_config is the template function: given the time unit, the caller's
    filters and group-by and the tenant's domain it returns a concrete config
    for the validator and compiler.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    description: str | None = None
    table: str
    selects: list[CustomQuerySelect]
    group_by: list[str] = Field(default_factory=list)
    filters: list[CustomQueryFilter] = Field(default_factory=list)  # always applied
    allowed_filters: frozenset[str] = frozenset()
    customizable: bool = False
    limit: int = 100
    time_bucketed: bool = False
    exclude_own_domain: bool = False

    def public_config(self) -> dict:
        return {
            "allowedFilters": sorted(self.allowed_filters),
            "customizable": self.customizable,
            "defaultLimit": self.limit,
        }

    def build_config(
        self,
        time_unit: TimeUnit = TimeUnit.DAY,
        filters: list[CustomQueryFilter] | None = None,
        group_by: list[str] | None = None,
        website_domain: str | None = None,
    ) -> CustomQueryConfig:
        applied = list(self.filters)
        for filt in filters or []:
            if filt.field in self.allowed_filters:
                applied.append(filt)
            elif self.customizable:
                raise CatalogFilterError(
                    f"Filter on '{filt.field}' is not allowed for query type '{self.id}'"
                )
            else:
                logger.debug("Ignoring filter on %s for %s", filt.field, self.id)

        if self.exclude_own_domain and website_domain:
            applied.append(
                CustomQueryFilter(
                    field=REFERRER_FIELD,
                    operator=FilterOperator.NOT_CONTAINS,
                    value=website_domain,
                )
            )

        grouping = list(self.group_by)
        if self.customizable:
            grouping.extend(f for f in group_by or [] if f not in grouping)

        return CustomQueryConfig(
            table=self.table,
            selects=self.selects,
            filters=applied,
            group_by=grouping,
            time_bucket=time_unit if self.time_bucketed else None,
        )
