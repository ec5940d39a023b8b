"""Schema registry: the read-only whitelist of queryable tables and columns.

built once at startup from the definition files and never mutated afterwards,
so it can be shared between requests (and threads) without locking. lookups
return None for unknown names - callers decide whether that is fatal.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from querygate.errors import DefinitionError
from querygate.models.schema import ColumnDefinition, TableDefinition


class SchemaRegistry:
    """Immutable catalog of table definitions keyed by table name."""

    def __init__(self, tables: Iterable[TableDefinition]) -> None:
        by_name: dict[str, TableDefinition] = {}
        for table in tables:
            if table.name in by_name:
                raise DefinitionError(f"Duplicate table: {table.name}")
            by_name[table.name] = table
        self._tables: Mapping[str, TableDefinition] = MappingProxyType(by_name)

    @property
    def tables(self) -> Mapping[str, TableDefinition]:
        return self._tables

    def table_names(self) -> list[str]:
        return list(self._tables)

    def get_table(self, name: str) -> TableDefinition | None:
        return self._tables.get(name)

    def is_valid_table(self, name: str) -> bool:
        return name in self._tables

    def get_column(self, table: str, field: str) -> ColumnDefinition | None:
        definition = self._tables.get(table)
        if definition is None:
            return None
        return definition.get_column(field)

    def is_valid_column(self, table: str, field: str) -> bool:
        return self.get_column(table, field) is not None

    def list_tables(self) -> list[dict]:
        """Introspection shape for the cli and http layer."""
        return [
            {
                "name": table.name,
                "database": table.database,
                "description": table.description,
                "columns": [
                    {
                        "name": column.name,
                        "type": column.type.value,
                        "aggregatable": column.aggregatable,
                        "filterable": column.filterable,
                    }
                    for column in table.columns.values()
                ],
            }
            for table in self._tables.values()
        ]

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables
