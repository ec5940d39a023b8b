"""Tests for SQL compiler."""

import pytest

from querygate.compiler.dialects import CLICKHOUSE, DUCKDB, get_dialect
from querygate.compiler.sql_builder import SQLCompiler, clamp_limit, format_sql, prepare_filter_value
from querygate.errors import CompilationErrorKind, QueryCompilationError
from querygate.models.query import (
    AggregateFunction,
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQuerySelect,
    FilterOperator,
)
from querygate.registry import SchemaRegistry


HOSTILE_VALUES = [
    "'; DROP TABLE x; --",
    "` OR 1=1 --",
    "{x:String}",
    "$1 OR $website_id",
    "a\nUNION SELECT password FROM users",
    "\\' OR \\'1\\'=\\'1",
    '" OR ""="',
    "%' AND 1=1 /*",
]


def make_config(**overrides) -> CustomQueryConfig:
    data = {
        "table": "pageviews",
        "selects": [{"field": "*", "aggregate": "count"}],
    }
    data.update(overrides)
    return CustomQueryConfig.model_validate(data)


def compile_config(compiler: SQLCompiler, config: CustomQueryConfig, **kwargs):
    return compiler.compile(
        config,
        tenant_id=kwargs.pop("tenant_id", "site-1"),
        start_date=kwargs.pop("start_date", "2024-01-01"),
        end_date=kwargs.pop("end_date", "2024-01-31"),
        **kwargs,
    )


@pytest.fixture
def compiler(registry: SchemaRegistry) -> SQLCompiler:
    return SQLCompiler(registry)


@pytest.fixture
def duckdb_compiler(registry: SchemaRegistry) -> SQLCompiler:
    return SQLCompiler(registry, DUCKDB)


class TestSQLCompiler:
    def test_compile_top_pages(self, compiler: SQLCompiler):
        """Compiles a grouped count to the expected ClickHouse SQL."""
        compiled = compile_config(compiler, make_config(groupBy=["path"]))

        assert compiled.sql == (
            "SELECT path, count() AS `count_all`\n"
            "FROM analytics.pageviews\n"
            "WHERE client_id = {website_id:String}"
            " AND time >= parseDateTimeBestEffort({start_date:String}, {timezone:String})"
            " AND time <= parseDateTimeBestEffort({end_date:String}, {timezone:String})\n"
            "GROUP BY path\n"
            "ORDER BY `count_all` DESC\n"
            "LIMIT 1000"
        )
        assert compiled.params == {
            "website_id": "site-1",
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
            "timezone": "UTC",
        }
        assert compiled.dialect == "clickhouse"

    def test_deterministic(self, compiler: SQLCompiler):
        """Compiling the same input twice gives identical output."""
        config = make_config(
            groupBy=["path", "country"],
            filters=[{"field": "country", "operator": "in", "value": ["US", "DE"]}],
        )
        assert compile_config(compiler, config) == compile_config(compiler, config)

    def test_values_never_in_sql(self, compiler: SQLCompiler):
        """Tenant, dates, timezone and filter values only appear in params."""
        payload = "x' OR 1=1; DROP TABLE pageviews; --"
        config = make_config(filters=[{"field": "path", "operator": "eq", "value": payload}])
        compiled = compile_config(
            compiler,
            config,
            tenant_id="tenant'--",
            start_date="2024-01-01'",
            timezone="Europe/Berlin'",
        )

        for value in (payload, "tenant'--", "2024-01-01'", "Europe/Berlin'", "DROP"):
            assert value not in compiled.sql
        assert compiled.params["filter_0"] == payload
        assert compiled.params["website_id"] == "tenant'--"
        assert compiled.params["timezone"] == "Europe/Berlin'"

    @pytest.mark.parametrize("dialect", [CLICKHOUSE, DUCKDB], ids=lambda d: d.name)
    @pytest.mark.parametrize("operator", list(FilterOperator), ids=lambda op: op.value)
    @pytest.mark.parametrize("payload", HOSTILE_VALUES)
    def test_hostile_filter_values_stay_in_params(
        self, registry: SchemaRegistry, dialect, operator: FilterOperator, payload: str
    ):
        """Metacharacters in any operator's value never leak into the SQL text."""
        value = [payload, "US"] if operator in (FilterOperator.IN, FilterOperator.NOT_IN) else payload
        config = make_config(filters=[{"field": "path", "operator": operator.value, "value": value}])
        compiled = compile_config(SQLCompiler(registry, dialect), config)

        assert payload not in compiled.sql
        assert payload in compiled.params["filter_0"]

    def test_filter_placeholders(self, compiler: SQLCompiler):
        """Each filter gets its own indexed, typed parameter."""
        config = make_config(
            filters=[
                {"field": "country", "operator": "eq", "value": "US"},
                {"field": "load_time", "operator": "gt", "value": 100},
                {"field": "country", "operator": "ne", "value": "DE"},
            ]
        )
        compiled = compile_config(compiler, config)

        assert "country = {filter_0:String}" in compiled.sql
        assert "load_time > {filter_1:Float64}" in compiled.sql
        assert "country != {filter_2:String}" in compiled.sql
        assert compiled.params["filter_0"] == "US"
        assert compiled.params["filter_1"] == 100
        assert compiled.params["filter_2"] == "DE"

    def test_operator_renderings(self, compiler: SQLCompiler):
        """String and list operators render with ClickHouse functions."""
        config = make_config(
            filters=[
                {"field": "path", "operator": "contains", "value": "blog"},
                {"field": "path", "operator": "not_contains", "value": "admin"},
                {"field": "path", "operator": "starts_with", "value": "/docs"},
                {"field": "country", "operator": "in", "value": ["US", "DE"]},
                {"field": "country", "operator": "not_in", "value": ["FR"]},
                {"field": "ttfb", "operator": "lte", "value": 200.5},
            ]
        )
        compiled = compile_config(compiler, config)

        assert "path LIKE {filter_0:String}" in compiled.sql
        assert "path NOT LIKE {filter_1:String}" in compiled.sql
        assert "startsWith(path, {filter_2:String})" in compiled.sql
        assert "country IN {filter_3:Array(String)}" in compiled.sql
        assert "country NOT IN {filter_4:Array(String)}" in compiled.sql
        assert "ttfb <= {filter_5:Float64}" in compiled.sql
        assert compiled.params["filter_0"] == "%blog%"
        assert compiled.params["filter_1"] == "%admin%"
        assert compiled.params["filter_2"] == "/docs"
        assert compiled.params["filter_3"] == ["US", "DE"]
        assert compiled.params["filter_4"] == ["FR"]

    def test_limit_clamped(self, compiler: SQLCompiler):
        """Requested limits above the cap are clamped."""
        compiled = compile_config(compiler, make_config(), limit=50000)
        assert compiled.sql.endswith("LIMIT 10000")

    def test_limit_default_and_floor(self, compiler: SQLCompiler):
        """No limit means the default; limits below one become one."""
        assert compile_config(compiler, make_config()).sql.endswith("LIMIT 1000")
        assert compile_config(compiler, make_config(), limit=0).sql.endswith("LIMIT 1")

    def test_offset(self, compiler: SQLCompiler):
        """Offset is emitted only when positive."""
        assert compile_config(compiler, make_config(), limit=50, offset=100).sql.endswith(
            "LIMIT 50\nOFFSET 100"
        )
        assert "OFFSET" not in compile_config(compiler, make_config(), offset=0).sql

    def test_flat_aggregate_has_no_order_by(self, compiler: SQLCompiler):
        """Without grouping there is nothing to order."""
        compiled = compile_config(compiler, make_config())
        assert "GROUP BY" not in compiled.sql
        assert "ORDER BY" not in compiled.sql

    def test_aliases(self, compiler: SQLCompiler):
        """Explicit aliases are used; defaults are derived from aggregate and field."""
        config = make_config(
            selects=[
                {"field": "*", "aggregate": "count", "alias": "views"},
                {"field": "anonymous_id", "aggregate": "uniq"},
                {"field": "load_time", "aggregate": "avg"},
            ],
            groupBy=["path"],
        )
        compiled = compile_config(compiler, config)

        assert "count() AS `views`" in compiled.sql
        assert "uniq(anonymous_id) AS `uniq_anonymous_id`" in compiled.sql
        assert "avg(load_time) AS `avg_load_time`" in compiled.sql
        assert "ORDER BY `views` DESC" in compiled.sql

    def test_alias_quoting(self, compiler: SQLCompiler, duckdb_compiler: SQLCompiler):
        """Quote characters inside aliases are escaped."""
        config = make_config(selects=[{"field": "*", "aggregate": "count", "alias": "a`b\\"}])
        assert "AS `a``b\\\\`" in compile_config(compiler, config).sql

        config = make_config(selects=[{"field": "*", "aggregate": "count", "alias": 'a"b'}])
        assert 'AS "a""b"' in compile_config(duckdb_compiler, config).sql

    def test_group_key_already_selected(self, compiler: SQLCompiler):
        """A group key is not projected twice when a select works on it."""
        config = make_config(
            selects=[{"field": "path", "aggregate": "uniq"}],
            groupBy=["path", "country"],
        )
        compiled = compile_config(compiler, config)

        assert compiled.sql.startswith("SELECT country, uniq(path) AS `uniq_path`\n")
        assert "GROUP BY path, country" in compiled.sql

    def test_group_key_prefix_is_not_a_match(self, compiler: SQLCompiler):
        """A select on a longer column name does not hide a group key."""
        config = make_config(
            selects=[{"field": "utm_source", "aggregate": "uniq"}],
            groupBy=["utm_medium"],
        )
        assert compile_config(compiler, config).sql.startswith("SELECT utm_medium, ")

    def test_time_bucket_day(self, compiler: SQLCompiler):
        """Daily buckets come first and sort oldest first."""
        config = make_config(timeBucket="day", groupBy=["country"])
        compiled = compile_config(compiler, config)

        assert compiled.sql.startswith(
            "SELECT toDate(time, {timezone:String}) AS `date`, country, count() AS `count_all`\n"
        )
        assert "GROUP BY `date`, country" in compiled.sql
        assert "ORDER BY `date` ASC, `count_all` DESC" in compiled.sql

    def test_time_bucket_hour(self, compiler: SQLCompiler):
        """Hourly buckets use toStartOfHour."""
        compiled = compile_config(compiler, make_config(timeBucket="hour"))

        assert "toStartOfHour(time, {timezone:String}) AS `date`" in compiled.sql
        assert "ORDER BY `date` ASC" in compiled.sql

    def test_primary_time_field_per_table(self, compiler: SQLCompiler):
        """The date range applies to the table's own time column."""
        compiled = compile_config(compiler, make_config(table="custom_events"))

        assert "FROM analytics.custom_events" in compiled.sql
        assert "timestamp >= parseDateTimeBestEffort" in compiled.sql

    def test_unsupported_aggregate(self, compiler: SQLCompiler):
        """Aggregate tokens without a rendering are refused."""
        select = CustomQuerySelect.model_construct(field="load_time", aggregate="median", alias=None)
        config = CustomQueryConfig.model_construct(
            table="pageviews", selects=[select], filters=[], group_by=[], time_bucket=None
        )
        with pytest.raises(QueryCompilationError) as exc_info:
            compile_config(compiler, config)

        assert exc_info.value.error_kind == CompilationErrorKind.UNSUPPORTED_AGGREGATE
        assert exc_info.value.kind == "UnsupportedAggregate"

    def test_wildcard_with_other_aggregate(self, compiler: SQLCompiler):
        """Only count can be rendered against the wildcard."""
        select = CustomQuerySelect.model_construct(
            field="*", aggregate=AggregateFunction.SUM, alias=None
        )
        config = CustomQueryConfig.model_construct(
            table="pageviews", selects=[select], filters=[], group_by=[], time_bucket=None
        )
        with pytest.raises(QueryCompilationError) as exc_info:
            compile_config(compiler, config)
        assert exc_info.value.error_kind == CompilationErrorKind.UNSUPPORTED_AGGREGATE

    def test_unsupported_operator(self, compiler: SQLCompiler):
        """Operator tokens without a rendering are refused."""
        filt = CustomQueryFilter.model_construct(field="path", operator="regex", value=".*")
        config = CustomQueryConfig.model_construct(
            table="pageviews",
            selects=make_config().selects,
            filters=[filt],
            group_by=[],
            time_bucket=None,
        )
        with pytest.raises(QueryCompilationError) as exc_info:
            compile_config(compiler, config)

        assert exc_info.value.error_kind == CompilationErrorKind.UNSUPPORTED_OPERATOR
        assert "regex" in str(exc_info.value)


class TestDuckDBDialect:
    def test_compile_top_pages(self, duckdb_compiler: SQLCompiler):
        """DuckDB uses $name placeholders and never binds the timezone."""
        compiled = compile_config(duckdb_compiler, make_config(groupBy=["path"]))

        assert compiled.sql == (
            'SELECT path, count(*) AS "count_all"\n'
            "FROM analytics.pageviews\n"
            "WHERE client_id = $website_id"
            " AND time >= CAST($start_date AS TIMESTAMP)"
            " AND time <= CAST($end_date AS TIMESTAMP)\n"
            "GROUP BY path\n"
            'ORDER BY "count_all" DESC\n'
            "LIMIT 1000"
        )
        assert "timezone" not in compiled.params
        assert compiled.dialect == "duckdb"

    def test_typed_placeholders(self, duckdb_compiler: SQLCompiler):
        """Numeric and list parameters are cast in the SQL."""
        config = make_config(
            selects=[{"field": "anonymous_id", "aggregate": "uniq"}],
            filters=[
                {"field": "load_time", "operator": "gte", "value": 100},
                {"field": "country", "operator": "not_in", "value": ["US"]},
                {"field": "path", "operator": "starts_with", "value": "/blog"},
            ],
            timeBucket="hour",
        )
        compiled = compile_config(duckdb_compiler, config)

        assert "count(DISTINCT anonymous_id)" in compiled.sql
        assert "load_time >= CAST($filter_0 AS DOUBLE)" in compiled.sql
        assert "NOT list_contains(CAST($filter_1 AS VARCHAR[]), country)" in compiled.sql
        assert "starts_with(path, $filter_2)" in compiled.sql
        assert "date_trunc('hour', time) AS \"date\"" in compiled.sql

    def test_get_dialect(self):
        """Dialects resolve by name."""
        assert get_dialect("clickhouse") is CLICKHOUSE
        assert get_dialect("duckdb") is DUCKDB
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("oracle")


class TestHelpers:
    def test_clamp_limit(self):
        """Limits are clamped into [1, max]."""
        assert clamp_limit(None) == 1000
        assert clamp_limit(50) == 50
        assert clamp_limit(50000) == 10000
        assert clamp_limit(-5) == 1
        assert clamp_limit(500, max_limit=100) == 100

    def test_prepare_filter_value(self):
        """Values are shaped for their placeholder types."""
        assert prepare_filter_value(FilterOperator.CONTAINS, "x") == "%x%"
        assert prepare_filter_value(FilterOperator.IN, "US") == ["US"]
        assert prepare_filter_value(FilterOperator.IN, [1, 2]) == ["1", "2"]
        assert prepare_filter_value(FilterOperator.EQ, 42) == "42"
        assert prepare_filter_value(FilterOperator.GT, 1.5) == 1.5

    def test_format_sql(self, duckdb_compiler: SQLCompiler):
        """Pretty-printing keeps the query, unparseable text comes back unchanged."""
        compiled = compile_config(duckdb_compiler, make_config(groupBy=["path"]))
        formatted = format_sql(compiled.sql, "duckdb")

        assert "LIMIT 1000" in formatted
        assert "analytics.pageviews" in formatted
        assert format_sql(")))", "duckdb") == ")))"
