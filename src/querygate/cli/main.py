"""CLI for querygate."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from querygate.compiler.dialects import get_dialect
from querygate.compiler.sql_builder import SQLCompiler, format_sql
from querygate.engine import QueryEngine
from querygate.errors import QueryGateError
from querygate.executor.duckdb_executor import DuckDBExecutor
from querygate.models.batch import BatchResultEnvelope, DynamicQueryRequest, TenantContext
from querygate.models.query import CustomQueryConfig, CustomQueryFilter
from querygate.parser.loader import load_definitions
from querygate.sample_data import load_sample_data
from querygate.validator import QueryValidator

app = typer.Typer(
    name="qg",
    help="querygate - safe analytics query compiler",
    no_args_is_help=True,
)
console = Console()

DefinitionsOption = Annotated[
    Path | None,
    typer.Option("--definitions", "-d", help="Definitions file or directory (default: bundled)"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load(definitions: Path | None):
    try:
        return load_definitions(definitions)
    except (OSError, QueryGateError) as e:
        console.print(f"[red]Error loading definitions: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def tables(definitions: DefinitionsOption = None) -> None:
    """List queryable tables and their columns."""
    registry, _ = _load(definitions)

    for table in registry.list_tables():
        grid = Table(title=f"{table['database']}.{table['name']}")
        grid.add_column("Column", style="cyan")
        grid.add_column("Type", style="green")
        grid.add_column("Aggregatable")
        grid.add_column("Filterable")
        for column in table["columns"]:
            grid.add_row(
                column["name"],
                column["type"],
                "yes" if column["aggregatable"] else "-",
                "yes" if column["filterable"] else "-",
            )
        console.print(grid)


@app.command()
def types(definitions: DefinitionsOption = None) -> None:
    """List the query catalog."""
    _, catalog = _load(definitions)

    if not len(catalog):
        console.print("[yellow]No query types defined[/yellow]")
        return

    grid = Table(title="Query types")
    grid.add_column("Id", style="cyan")
    grid.add_column("Table", style="green")
    grid.add_column("Customizable")
    grid.add_column("Limit", justify="right")
    grid.add_column("Allowed filters")
    for entry_id in catalog.ids():
        entry = catalog.get(entry_id)
        grid.add_row(
            entry.id,
            entry.table,
            "yes" if entry.customizable else "-",
            str(entry.limit),
            ", ".join(sorted(entry.allowed_filters)) or "-",
        )
    console.print(grid)


@app.command()
def validate(definitions: DefinitionsOption = None) -> None:
    """Load and cross-check the definitions."""
    registry, catalog = _load(definitions)
    console.print(
        f"[green]Validated {len(registry)} tables and "
        f"{len(catalog)} query types successfully![/green]"
    )


@app.command()
def compile(
    config: Annotated[str, typer.Argument(help="Query config as JSON, or a path to a JSON file")],
    definitions: DefinitionsOption = None,
    website_id: Annotated[str, typer.Option("--website", "-w", help="Website id")] = "demo",
    start_date: Annotated[str, typer.Option("--start", help="Start date")] = "2024-01-01",
    end_date: Annotated[str, typer.Option("--end", help="End date")] = "2024-01-31",
    timezone: Annotated[str, typer.Option("--timezone", "--tz")] = "UTC",
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Maximum rows")] = None,
    offset: Annotated[int, typer.Option("--offset")] = 0,
    dialect: Annotated[str, typer.Option("--dialect", help="clickhouse or duckdb")] = "clickhouse",
    pretty: Annotated[bool, typer.Option("--pretty", "-p", help="Reformat with sqlglot")] = False,
) -> None:
    """Validate and compile a custom query config, printing SQL and params."""
    registry, _ = _load(definitions)

    raw = Path(config).read_text() if Path(config).is_file() else config
    try:
        query_config = CustomQueryConfig.model_validate(json.loads(raw))
        sql_dialect = get_dialect(dialect)
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        console.print(f"[red]Invalid config: {e}[/red]")
        raise typer.Exit(1)

    try:
        QueryValidator(registry).validate(query_config)
        compiled = SQLCompiler(registry, sql_dialect).compile(
            query_config,
            tenant_id=website_id,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            limit=limit,
            offset=offset,
        )
    except QueryGateError as e:
        console.print(f"[red]{e.kind}: {e}[/red]")
        raise typer.Exit(1)

    sql = format_sql(compiled.sql, dialect) if pretty else compiled.sql
    console.print(Syntax(sql, "sql", theme="monokai", line_numbers=True))
    console.print_json(json.dumps(compiled.params, default=str))


def _parse_filter(text: str) -> CustomQueryFilter:
    """field:operator:value, with comma-separated values for in/not_in."""
    field, operator, value = text.split(":", 2)
    if operator in ("in", "not_in"):
        return CustomQueryFilter(field=field, operator=operator, value=value.split(","))
    return CustomQueryFilter(field=field, operator=operator, value=value)


@app.command()
def run(
    parameters: Annotated[str, typer.Argument(help="Comma-separated query types")],
    definitions: DefinitionsOption = None,
    db_path: Annotated[str | None, typer.Option("--db", help="DuckDB database path")] = None,
    sample: Annotated[bool, typer.Option("--sample", help="Load generated sample data")] = False,
    website_id: Annotated[str, typer.Option("--website", "-w", help="Website id")] = "demo",
    start_date: Annotated[str, typer.Option("--start", help="Start date")] = "2024-01-01",
    end_date: Annotated[str, typer.Option("--end", help="End date")] = "2024-01-31",
    timezone: Annotated[str, typer.Option("--timezone", "--tz")] = "UTC",
    granularity: Annotated[str, typer.Option("--granularity", "-g")] = "daily",
    filters: Annotated[
        list[str] | None, typer.Option("--filter", "-f", help="field:operator:value")
    ] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Rows per query")] = None,
    page: Annotated[int | None, typer.Option("--page")] = None,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: table, json")] = "table",
) -> None:
    """Run catalog queries against DuckDB."""
    registry, catalog = _load(definitions)
    executor = DuckDBExecutor(db_path)
    if sample:
        try:
            load_sample_data(executor, registry, website_id=website_id)
        except QueryGateError as e:
            console.print(f"[red]{e}[/red]")
            executor.close()
            raise typer.Exit(1)

    try:
        request = DynamicQueryRequest(
            parameters=[p.strip() for p in parameters.split(",") if p.strip()],
            filters=[_parse_filter(f) for f in filters or []],
            granularity=granularity,
            limit=limit,
            page=page,
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid request: {e}[/red]")
        raise typer.Exit(1)

    tenant = TenantContext(
        website_id=website_id, start_date=start_date, end_date=end_date, timezone=timezone
    )
    with QueryEngine(executor, registry=registry, catalog=catalog) as engine:
        envelope = engine.run_batch_sync(request, tenant)

    _output_envelope(envelope, output)
    if not any(item.success for item in envelope.data):
        raise typer.Exit(1)


def _output_envelope(envelope: BatchResultEnvelope, output_format: str) -> None:
    if output_format == "json":
        console.print(
            json.dumps(envelope.to_wire(), indent=2, default=str),
            soft_wrap=True,
            markup=False,
            highlight=False,
        )
        return

    for item in envelope.data:
        if not item.success:
            console.print(f"[red]{item.parameter}: {item.error}[/red]")
            continue
        if not item.data:
            console.print(f"[yellow]{item.parameter}: no rows[/yellow]")
            continue
        columns = list(item.data[0])
        grid = Table(title=f"{item.parameter} ({len(item.data)} rows)")
        for col in columns:
            grid.add_column(col)
        for row in item.data:
            grid.add_row(*[str(row.get(c, "")) for c in columns])
        console.print(grid)


if __name__ == "__main__":
    app()
