"""YAML loader for table and query catalog definitions.

definition files hold `tables:` (the schema whitelist), `queries:` (catalog
entries) or both. everything is loaded and cross-checked once at startup, the
registry and catalog that come out are read-only afterwards.
"""

import logging
from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from querygate.catalog import QueryCatalog
from querygate.errors import DefinitionError, QueryValidationError
from querygate.models.catalog import REFERRER_FIELD, QueryCatalogEntry
from querygate.models.query import WILDCARD
from querygate.models.schema import TableDefinition
from querygate.registry import SchemaRegistry
from querygate.validator import QueryValidator

logger = logging.getLogger(__name__)


def bundled_definitions_path() -> Path:
    """Directory of the analytics definitions shipped with the package."""
    return Path(str(files("querygate") / "definitions"))


def load_definitions(path: str | Path | None = None) -> tuple[SchemaRegistry, QueryCatalog]:
    """Load a definitions file or directory into a registry and catalog.

    a directory is searched recursively for .yaml/.yml files; order doesn't
    matter since cross-references are checked after everything is read.
    """
    path = Path(path) if path is not None else bundled_definitions_path()
    if not path.exists():
        raise FileNotFoundError(f"Definitions path not found: {path}")

    if path.is_dir():
        yaml_files = sorted(path.glob("**/*.yaml")) + sorted(path.glob("**/*.yml"))
        if not yaml_files:
            raise DefinitionError(f"No YAML files found in {path}")
    else:
        yaml_files = [path]

    tables: list[TableDefinition] = []
    queries: list[QueryCatalogEntry] = []
    for yaml_file in yaml_files:
        file_tables, file_queries = _load_file(yaml_file)
        tables.extend(file_tables)
        queries.extend(file_queries)

    registry = SchemaRegistry(tables)
    catalog = QueryCatalog(queries)
    _validate_references(registry, catalog)

    logger.info(
        "Loaded %d tables and %d query types from %s", len(registry), len(catalog), path
    )
    return registry, catalog


def _load_file(path: Path) -> tuple[list[TableDefinition], list[QueryCatalogEntry]]:
    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return [], []  # empty file
    if not isinstance(data, dict):
        raise DefinitionError(f"{path}: expected a mapping at the top level")

    try:
        tables = [TableDefinition.model_validate(t) for t in data.get("tables") or []]
        queries = [_parse_query(q) for q in data.get("queries") or []]
    except ValidationError as e:
        raise DefinitionError(f"{path}: {e}") from e

    return tables, queries


def _parse_query(data: dict[str, Any]) -> QueryCatalogEntry:
    # yaml uses group_by/allowed_filters, requests use camelCase - accept both here
    data = dict(data)
    if "groupBy" in data:
        data["group_by"] = data.pop("groupBy")
    if "allowedFilters" in data:
        data["allowed_filters"] = data.pop("allowedFilters")
    return QueryCatalogEntry.model_validate(data)


def _validate_references(registry: SchemaRegistry, catalog: QueryCatalog) -> None:
    """Catch broken catalog entries at load time rather than at query time."""
    validator = QueryValidator(registry)
    for entry in catalog.entries.values():
        table = registry.get_table(entry.table)
        if table is None:
            raise DefinitionError(
                f"Query type '{entry.id}' references unknown table '{entry.table}'"
            )

        referenced = [s.field for s in entry.selects if s.field != WILDCARD]
        referenced += entry.group_by
        referenced += [f.field for f in entry.filters]
        referenced += list(entry.allowed_filters)
        if entry.exclude_own_domain:
            referenced.append(REFERRER_FIELD)
        for column in referenced:
            if column not in table.columns:
                raise DefinitionError(
                    f"Query type '{entry.id}' references unknown column "
                    f"'{column}' on table '{entry.table}'"
                )

        try:
            validator.validate(entry.build_config())
        except QueryValidationError as e:
            raise DefinitionError(f"Query type '{entry.id}' is invalid: {e}") from e
