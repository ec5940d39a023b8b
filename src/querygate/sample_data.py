"""Sample analytics data for DuckDB.

creates the tables of a schema registry in an embedded duckdb
database and fills them with reproducible fake traffic. used by `qg run
--sample` and by the tests.
"""

import random
from datetime import datetime, timedelta
from typing import Any

from querygate.errors import DefinitionError
from querygate.executor.duckdb_executor import DuckDBExecutor
from querygate.models.schema import ColumnType, TableDefinition
from querygate.registry import SchemaRegistry

DUCKDB_TYPES: dict[ColumnType, str] = {
    ColumnType.STRING: "VARCHAR",
    ColumnType.NUMBER: "DOUBLE",
    ColumnType.DATETIME: "TIMESTAMP",
    ColumnType.ENUM: "VARCHAR",
}

SAMPLE_TABLES = ("pageviews", "custom_events", "outgoing_links", "errors", "web_vitals")

PATHS = ["/", "/pricing", "/docs", "/blog", "/blog/launch", "/signup"]
REFERRERS = ["", "https://google.com", "https://news.ycombinator.com", "https://twitter.com"]
COUNTRIES = [("US", "California", "San Francisco"), ("DE", "Berlin", "Berlin"),
             ("GB", "England", "London"), ("FR", "Ile-de-France", "Paris")]
BROWSERS = ["Chrome", "Firefox", "Safari", "Edge"]
OPERATING_SYSTEMS = ["Windows", "macOS", "Linux", "iOS", "Android"]
DEVICES = ["desktop", "mobile", "tablet"]
UTM_SOURCES = ["", "", "newsletter", "google", "twitter"]


def create_tables(executor: DuckDBExecutor, registry: SchemaRegistry) -> None:
    """Create one duckdb table per registered table, columns in declared order."""
    for database in sorted({table.database for table in registry.tables.values()}):
        executor.execute_raw(f"CREATE SCHEMA IF NOT EXISTS {database}")
    for table in registry.tables.values():
        col_defs = ", ".join(
            f'"{column.name}" {DUCKDB_TYPES[column.type]}' for column in table.columns.values()
        )
        executor.execute_raw(f"CREATE OR REPLACE TABLE {table.qualified_name} ({col_defs})")


def insert_rows(executor: DuckDBExecutor, table: TableDefinition, rows: list[dict[str, Any]]) -> None:
    """Insert dict rows; columns missing from a row are stored as NULL."""
    if not rows:
        return
    columns = list(table.columns)
    placeholders = ", ".join(["?"] * len(columns))
    executor.conn.executemany(
        f"INSERT INTO {table.qualified_name} VALUES ({placeholders})",
        [[row.get(c) for c in columns] for row in rows],
    )


def generate_pageviews(
    count: int, website_id: str, start: datetime, days: int, rng: random.Random
) -> list[dict[str, Any]]:
    rows = []
    for _ in range(count):
        visitor = rng.randint(1, max(1, count // 4))
        country, region, city = rng.choice(COUNTRIES)
        path = rng.choice(PATHS)
        rows.append(
            {
                "client_id": website_id,
                "time": start + timedelta(seconds=rng.randint(0, days * 86400 - 1)),
                "session_id": f"s{visitor}-{rng.randint(1, 3)}",
                "anonymous_id": f"v{visitor}",
                "path": path,
                "url": f"https://example.com{path}",
                "title": path.strip("/") or "home",
                "referrer": rng.choice(REFERRERS),
                "country": country,
                "region": region,
                "city": city,
                "browser_name": rng.choice(BROWSERS),
                "os_name": rng.choice(OPERATING_SYSTEMS),
                "device_type": rng.choice(DEVICES),
                "language": rng.choice(["en-US", "de-DE", "fr-FR"]),
                "utm_source": rng.choice(UTM_SOURCES),
                "utm_medium": "",
                "utm_campaign": "",
                "user_agent": "Mozilla/5.0",
                "time_on_page": round(rng.uniform(1, 300), 1),
                "scroll_depth": round(rng.uniform(0, 100), 1),
                "load_time": rng.randint(100, 4000),
                "ttfb": rng.randint(20, 800),
            }
        )
    return rows


def load_sample_data(
    executor: DuckDBExecutor,
    registry: SchemaRegistry,
    website_id: str = "demo",
    start: datetime = datetime(2024, 1, 1),
    days: int = 30,
    pageviews: int = 2000,
    seed: int = 42,
) -> None:
    """Create all tables and fill them with reproducible traffic for one website.

    the registry must declare the five bundled analytics tables.
    """
    missing = [name for name in SAMPLE_TABLES if name not in registry]
    if missing:
        raise DefinitionError(f"Sample data needs tables: {', '.join(missing)}")

    rng = random.Random(seed)
    create_tables(executor, registry)

    views = generate_pageviews(pageviews, website_id, start, days, rng)
    insert_rows(executor, registry.tables["pageviews"], views)

    sample = views[: max(1, pageviews // 10)]
    insert_rows(
        executor,
        registry.tables["custom_events"],
        [
            {
                "client_id": website_id,
                "timestamp": v["time"],
                "event_name": rng.choice(["signup_click", "plan_selected", "video_play"]),
                "anonymous_id": v["anonymous_id"],
                "session_id": v["session_id"],
                "path": v["path"],
                "properties": "{}",
            }
            for v in sample
        ],
    )
    insert_rows(
        executor,
        registry.tables["outgoing_links"],
        [
            {
                "client_id": website_id,
                "timestamp": v["time"],
                "href": rng.choice(["https://github.com/example", "https://docs.example.org"]),
                "text": "link",
                "path": v["path"],
                "anonymous_id": v["anonymous_id"],
                "session_id": v["session_id"],
            }
            for v in sample
        ],
    )
    insert_rows(
        executor,
        registry.tables["errors"],
        [
            {
                "client_id": website_id,
                "timestamp": v["time"],
                "message": "Cannot read properties of undefined",
                "error_type": rng.choice(["TypeError", "ReferenceError"]),
                "path": v["path"],
                "browser_name": v["browser_name"],
                "anonymous_id": v["anonymous_id"],
                "stack": "",
            }
            for v in sample[:50]
        ],
    )
    insert_rows(
        executor,
        registry.tables["web_vitals"],
        [
            {
                "client_id": website_id,
                "timestamp": v["time"],
                "path": v["path"],
                "metric_name": rng.choice(["LCP", "FCP", "CLS", "INP"]),
                "metric_value": round(rng.uniform(0.01, 4000), 2),
                "anonymous_id": v["anonymous_id"],
            }
            for v in sample
        ],
    )
