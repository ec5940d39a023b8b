"""Pytest fixtures for querygate tests."""

from collections.abc import Generator
from datetime import datetime
from pathlib import Path

import pytest

from querygate.catalog import QueryCatalog
from querygate.engine import QueryEngine
from querygate.executor.duckdb_executor import DuckDBExecutor
from querygate.models.batch import TenantContext
from querygate.parser.loader import load_definitions
from querygate.registry import SchemaRegistry
from querygate.sample_data import create_tables, insert_rows


@pytest.fixture
def sample_definitions_yaml() -> str:
    """A small definitions file: one table, three catalog entries."""
    return """
tables:
  - name: visits
    database: stats
    client_id_field: site_id
    primary_time_field: ts
    columns:
      - {name: site_id, filterable: false}
      - {name: ts, type: datetime, filterable: false}
      - {name: path}
      - {name: country}
      - {name: referrer}
      - {name: duration, type: number, aggregatable: true}

queries:
  - id: top_paths
    table: visits
    selects:
      - {field: "*", aggregate: count, alias: visits}
    group_by: [path]
    allowed_filters: [country]
    limit: 25

  - id: visits_by_date
    table: visits
    selects:
      - {field: "*", aggregate: count, alias: visits}
    time_bucketed: true
    allowedFilters: [country, path]

  - id: durations
    table: visits
    selects:
      - {field: duration, aggregate: avg}
    groupBy: [path]
    allowed_filters: [country]
    customizable: true
"""


@pytest.fixture
def definitions_dir(tmp_path: Path, sample_definitions_yaml: str) -> Path:
    """Create a temporary definitions directory with sample YAML."""
    path = tmp_path / "definitions"
    path.mkdir()
    (path / "stats.yaml").write_text(sample_definitions_yaml)
    return path


@pytest.fixture(scope="session")
def bundled() -> tuple[SchemaRegistry, QueryCatalog]:
    return load_definitions()


@pytest.fixture
def registry(bundled: tuple[SchemaRegistry, QueryCatalog]) -> SchemaRegistry:
    """The registry built from the bundled analytics definitions."""
    return bundled[0]


@pytest.fixture
def catalog(bundled: tuple[SchemaRegistry, QueryCatalog]) -> QueryCatalog:
    """The catalog built from the bundled analytics definitions."""
    return bundled[1]


@pytest.fixture
def sample_pageviews() -> list[dict]:
    """Hand-made pageviews for two websites, all in January 2024."""

    def view(client_id, day, path, visitor, country="US", referrer="", load_time=100):
        return {
            "client_id": client_id,
            "time": datetime(2024, 1, day, 12, 0),
            "session_id": f"{visitor}-s",
            "anonymous_id": visitor,
            "path": path,
            "referrer": referrer,
            "country": country,
            "browser_name": "Chrome",
            "device_type": "desktop",
            "time_on_page": 10.0,
            "load_time": load_time,
            "ttfb": 50,
        }

    return [
        view("site-1", 1, "/", "v1"),
        view("site-1", 1, "/", "v2", country="DE"),
        view("site-1", 2, "/", "v1"),
        view("site-1", 2, "/pricing", "v3", referrer="https://google.com", load_time=300),
        view("site-1", 3, "/docs", "v1", referrer="https://site-one.com/blog"),
        view("site-1", 3, "/docs", "v4", country="DE", referrer="https://google.com"),
        # other tenant, same paths
        view("site-2", 1, "/", "w1"),
        view("site-2", 1, "/secret", "w2"),
    ]


@pytest.fixture
def db_with_data(
    sample_pageviews: list[dict], registry: SchemaRegistry
) -> Generator[DuckDBExecutor, None, None]:
    """Create a DuckDB executor with the analytics tables and sample pageviews."""
    executor = DuckDBExecutor()
    create_tables(executor, registry)
    insert_rows(executor, registry.tables["pageviews"], sample_pageviews)
    insert_rows(
        executor,
        registry.tables["custom_events"],
        [
            {"client_id": "site-1", "timestamp": datetime(2024, 1, 2), "event_name": "signup",
             "anonymous_id": "v1", "path": "/"},
            {"client_id": "site-1", "timestamp": datetime(2024, 1, 2), "event_name": "signup",
             "anonymous_id": "v2", "path": "/pricing"},
            {"client_id": "site-1", "timestamp": datetime(2024, 1, 3), "event_name": "play",
             "anonymous_id": "v1", "path": "/docs"},
        ],
    )
    yield executor
    executor.close()


@pytest.fixture
def engine(
    db_with_data: DuckDBExecutor, bundled: tuple[SchemaRegistry, QueryCatalog]
) -> QueryEngine:
    """Create a QueryEngine over the sample DuckDB data."""
    registry, catalog = bundled
    return QueryEngine(db_with_data, registry=registry, catalog=catalog)


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(website_id="site-1", start_date="2024-01-01", end_date="2024-01-31")
