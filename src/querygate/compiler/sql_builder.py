"""SQL compiler for validated custom query configs.

turns a config into (sql, params). the one rule that matters: values never go
into the sql text. tenant id, dates, timezone and every filter value travel in
the params dict and the sql only holds placeholders for them. identifiers do go
in directly, but they come from the registry (checked against a strict pattern
at load time) or are aliases, which get quoted.

the flow:
  1. select list - aggregates with aliases, group keys prepended
  2. where - tenant scope, date range, one predicate per filter
  3. group by / order by / limit / offset

the compiler trusts the validator for table/column existence but still refuses
aggregate or operator tokens it cannot render.
"""

import logging
from typing import Any

import sqlglot

from querygate.compiler.dialects import CLICKHOUSE, OPERATOR_PARAM_TYPES, Dialect, ParamType
from querygate.errors import (
    CompilationErrorKind,
    QueryCompilationError,
    QueryValidationError,
    ValidationErrorKind,
)
from querygate.models.query import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    WILDCARD,
    CompiledQuery,
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQuerySelect,
    FilterOperator,
)
from querygate.models.schema import TableDefinition
from querygate.registry import SchemaRegistry

logger = logging.getLogger(__name__)

# alias of the projected time bucket for time-series queries
TIME_BUCKET_ALIAS = "date"


def clamp_limit(limit: int | None, max_limit: int = MAX_LIMIT) -> int:
    if limit is None:
        limit = DEFAULT_LIMIT
    return max(1, min(limit, max_limit))


class SQLCompiler:
    """Compiles custom query configs into parameterized SQL.

    stateless - holds the registry and dialect but never modifies either, so
    one instance can serve concurrent requests.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        dialect: Dialect = CLICKHOUSE,
        max_limit: int = MAX_LIMIT,
    ) -> None:
        self.registry = registry
        self.dialect = dialect
        self.max_limit = max_limit

    def compile(
        self,
        config: CustomQueryConfig,
        tenant_id: str,
        start_date: str,
        end_date: str,
        timezone: str = "UTC",
        limit: int | None = None,
        offset: int = 0,
    ) -> CompiledQuery:
        """Compile a validated config for one tenant and date range."""
        table = self.registry.get_table(config.table)
        if table is None:
            # only reachable when the validator was skipped
            raise QueryValidationError(
                ValidationErrorKind.UNKNOWN_TABLE, "Table not found", field="table"
            )

        params: dict[str, Any] = {
            "website_id": tenant_id,
            "start_date": start_date,
            "end_date": end_date,
        }
        if self.dialect.binds_timezone:
            params["timezone"] = timezone

        select_exprs = self._build_select_exprs(config, table)
        where_conditions = self._build_where_conditions(config, table, params)
        group_by_exprs = self._build_group_by_exprs(config)
        order_by_exprs = self._build_order_by_exprs(config)

        sql = self._assemble_query(
            select_exprs=select_exprs,
            from_clause=table.qualified_name,
            where_conditions=where_conditions,
            group_by_exprs=group_by_exprs,
            order_by_exprs=order_by_exprs,
            limit=clamp_limit(limit, self.max_limit),
            offset=max(0, offset),
        )

        logger.debug(
            "Compiled %s query on %s with params %s",
            self.dialect.name,
            table.name,
            sorted(params),
        )
        return CompiledQuery(sql=sql, params=params, dialect=self.dialect.name)

    def _build_select_exprs(self, config: CustomQueryConfig, table: TableDefinition) -> list[str]:
        exprs = [
            f"{self._aggregate_expr(select)} AS {self.dialect.quote_identifier(select.resolved_alias)}"
            for select in config.selects
        ]

        # group keys need projecting unless a select already works on that field.
        # compares parsed field names, not sql text, so "path" does not match "url_path"
        selected_fields = {select.field for select in config.selects}
        keys = [column for column in config.group_by if column not in selected_fields]
        keys = list(dict.fromkeys(keys))

        if config.time_bucket is not None:
            bucket = self._time_bucket_expr(config, table)
            keys.insert(0, f"{bucket} AS {self.dialect.quote_identifier(TIME_BUCKET_ALIAS)}")

        return keys + exprs

    def _aggregate_expr(self, select: CustomQuerySelect) -> str:
        template = self.dialect.aggregate_template(select.aggregate)
        if template is None:
            raise QueryCompilationError(
                CompilationErrorKind.UNSUPPORTED_AGGREGATE,
                f"Unknown aggregate function: {_token(select.aggregate)}",
            )
        if select.field == WILDCARD:
            if select.aggregate != "count":
                raise QueryCompilationError(
                    CompilationErrorKind.UNSUPPORTED_AGGREGATE,
                    f'Aggregate "{_token(select.aggregate)}" cannot be applied to "*"',
                )
            return self.dialect.count_all
        return template.format(field=select.field)

    def _time_bucket_expr(self, config: CustomQueryConfig, table: TableDefinition) -> str:
        template = self.dialect.time_buckets[config.time_bucket]
        tz = self.dialect.placeholder("timezone", ParamType.STRING)
        return template.format(field=table.primary_time_field, tz=tz)

    def _build_where_conditions(
        self,
        config: CustomQueryConfig,
        table: TableDefinition,
        params: dict[str, Any],
    ) -> list[str]:
        d = self.dialect
        tz = d.placeholder("timezone", ParamType.STRING)
        start = d.datetime_template.format(param=d.placeholder("start_date", ParamType.STRING), tz=tz)
        end = d.datetime_template.format(param=d.placeholder("end_date", ParamType.STRING), tz=tz)

        conditions = [
            f"{table.client_id_field} = {d.placeholder('website_id', ParamType.STRING)}",
            f"{table.primary_time_field} >= {start}",
            f"{table.primary_time_field} <= {end}",
        ]

        # one param per filter index so the same field can be filtered twice
        for index, filt in enumerate(config.filters):
            param_name = f"filter_{index}"
            conditions.append(self._filter_expr(filt, param_name))
            params[param_name] = prepare_filter_value(filt.operator, filt.value)

        return conditions

    def _filter_expr(self, filt: CustomQueryFilter, param_name: str) -> str:
        template = self.dialect.operator_template(filt.operator)
        param_type = OPERATOR_PARAM_TYPES.get(filt.operator)
        if template is None or param_type is None:
            raise QueryCompilationError(
                CompilationErrorKind.UNSUPPORTED_OPERATOR,
                f"Unknown operator: {_token(filt.operator)}",
            )
        placeholder = self.dialect.placeholder(param_name, param_type)
        return template.format(field=filt.field, param=placeholder)

    def _build_group_by_exprs(self, config: CustomQueryConfig) -> list[str]:
        exprs = list(dict.fromkeys(config.group_by))
        if config.time_bucket is not None:
            exprs.insert(0, self.dialect.quote_identifier(TIME_BUCKET_ALIAS))
        return exprs

    def _build_order_by_exprs(self, config: CustomQueryConfig) -> list[str]:
        """Time series read oldest first; grouped rankings by the first metric, descending.

        flat aggregates (no grouping at all) get no ORDER BY.
        """
        exprs = []
        if config.time_bucket is not None:
            exprs.append(f"{self.dialect.quote_identifier(TIME_BUCKET_ALIAS)} ASC")
        if config.group_by:
            first_alias = config.selects[0].resolved_alias
            exprs.append(f"{self.dialect.quote_identifier(first_alias)} DESC")
        return exprs

    def _assemble_query(
        self,
        select_exprs: list[str],
        from_clause: str,
        where_conditions: list[str],
        group_by_exprs: list[str],
        order_by_exprs: list[str],
        limit: int,
        offset: int,
    ) -> str:
        parts = [f"SELECT {', '.join(select_exprs)}"]
        parts.append(f"FROM {from_clause}")
        parts.append(f"WHERE {' AND '.join(where_conditions)}")

        if group_by_exprs:
            parts.append(f"GROUP BY {', '.join(group_by_exprs)}")

        if order_by_exprs:
            parts.append(f"ORDER BY {', '.join(order_by_exprs)}")

        parts.append(f"LIMIT {limit}")
        if offset:
            parts.append(f"OFFSET {offset}")

        return "\n".join(parts)


def prepare_filter_value(operator: FilterOperator | str, value: Any) -> Any:
    """Shape a filter value for its placeholder type."""
    if operator in (FilterOperator.CONTAINS, FilterOperator.NOT_CONTAINS):
        text = ",".join(map(str, value)) if isinstance(value, list) else str(value)
        return f"%{text}%"
    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        if isinstance(value, list):
            return [str(v) for v in value]
        return [str(value)]
    if isinstance(value, list):
        return [str(v) for v in value]
    if OPERATOR_PARAM_TYPES.get(operator) == ParamType.STRING:
        return str(value)
    return value


def format_sql(sql: str, dialect: str = "clickhouse") -> str:
    """Pretty-print SQL with sqlglot for display.

    falls back to the raw text when sqlglot cannot parse it - clickhouse query
    parameters are not understood by every sqlglot release.
    """
    try:
        parsed = sqlglot.parse_one(sql, dialect=dialect)
        return parsed.sql(dialect=dialect, pretty=True)
    except Exception:
        logger.debug("sqlglot could not format %s sql, returning it unformatted", dialect)
        return sql


def _token(value: object) -> str:
    return value.value if hasattr(value, "value") else str(value)
