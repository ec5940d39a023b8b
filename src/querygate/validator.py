"""Validate custom query configs against the schema registry.

checks run cheapest first and stop at the first failure. nothing here does io
or touches the sql - a config either passes as a whole or one
QueryValidationError comes back describing what was wrong.
"""

import logging

from querygate.errors import QueryValidationError, ValidationErrorKind
from querygate.models.query import (
    WILDCARD,
    AggregateFunction,
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQuerySelect,
)
from querygate.registry import SchemaRegistry

logger = logging.getLogger(__name__)

MAX_SELECTS = 10
MAX_FILTERS = 20
MAX_GROUP_BY = 5


class QueryValidator:
    """Checks configs against one registry. stateless apart from the registry."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def validate(self, config: CustomQueryConfig) -> None:
        """Raise QueryValidationError if the config is not safe to compile."""
        table = config.table
        if not self.registry.is_valid_table(table):
            valid = ", ".join(self.registry.table_names())
            raise QueryValidationError(
                ValidationErrorKind.UNKNOWN_TABLE,
                f"Invalid table. Valid tables: {valid}",
                field="table",
            )

        if not config.selects:
            raise QueryValidationError(
                ValidationErrorKind.EMPTY_SELECTS,
                "At least one SELECT expression is required",
                field="selects",
            )
        if len(config.selects) > MAX_SELECTS:
            raise QueryValidationError(
                ValidationErrorKind.TOO_MANY_SELECTS,
                f"Maximum {MAX_SELECTS} SELECT expressions allowed",
                field="selects",
            )
        for select in config.selects:
            self._validate_select(select, table)

        if config.filters:
            if len(config.filters) > MAX_FILTERS:
                raise QueryValidationError(
                    ValidationErrorKind.TOO_MANY_FILTERS,
                    f"Maximum {MAX_FILTERS} filters allowed",
                    field="filters",
                )
            for filt in config.filters:
                self._validate_filter(filt, table)

        if config.group_by:
            if len(config.group_by) > MAX_GROUP_BY:
                raise QueryValidationError(
                    ValidationErrorKind.TOO_MANY_GROUP_BY,
                    f"Maximum {MAX_GROUP_BY} GROUP BY fields allowed",
                    field="groupBy",
                )
            for column in config.group_by:
                if not self.registry.is_valid_column(table, column):
                    raise QueryValidationError(
                        ValidationErrorKind.UNKNOWN_GROUP_BY_COLUMN,
                        f'Invalid GROUP BY column "{column}" for table "{table}"',
                        field="groupBy",
                        column=column,
                    )

    def is_valid(self, config: CustomQueryConfig) -> bool:
        try:
            self.validate(config)
        except QueryValidationError as e:
            logger.debug("Rejected config for %s: %s", config.table, e)
            return False
        return True

    def _validate_select(self, select: CustomQuerySelect, table: str) -> None:
        if select.field == WILDCARD:
            if select.aggregate != AggregateFunction.COUNT:
                raise QueryValidationError(
                    ValidationErrorKind.WILDCARD_REQUIRES_COUNT,
                    f'Aggregate "{_token(select.aggregate)}" requires a specific column, not "*"',
                    field="selects",
                    column=WILDCARD,
                )
            return

        column = self.registry.get_column(table, select.field)
        if column is None:
            raise QueryValidationError(
                ValidationErrorKind.UNKNOWN_COLUMN,
                f'Invalid column "{select.field}" for table "{table}"',
                field="selects",
                column=select.field,
            )

        if not column.aggregatable and _needs_aggregatable(select.aggregate):
            raise QueryValidationError(
                ValidationErrorKind.AGGREGATE_NOT_ALLOWED,
                f'Column "{column.name}" cannot be used with aggregate '
                f'"{_token(select.aggregate)}"',
                field="selects",
                column=column.name,
            )

    def _validate_filter(self, filt: CustomQueryFilter, table: str) -> None:
        column = self.registry.get_column(table, filt.field)
        if column is None:
            raise QueryValidationError(
                ValidationErrorKind.UNKNOWN_FILTER_COLUMN,
                f'Invalid filter column "{filt.field}" for table "{table}"',
                field="filters",
                column=filt.field,
            )
        if not column.filterable:
            raise QueryValidationError(
                ValidationErrorKind.FILTER_NOT_ALLOWED,
                f'Column "{column.name}" cannot be used in filters',
                field="filters",
                column=column.name,
            )


def _needs_aggregatable(aggregate: AggregateFunction | str) -> bool:
    # a raw string only gets here through model_construct; treat it as the strictest case
    if isinstance(aggregate, AggregateFunction):
        return aggregate.needs_aggregatable
    return aggregate not in ("count", "uniq")


def _token(value: object) -> str:
    return value.value if isinstance(value, AggregateFunction) else str(value)
