"""Query catalog: the named, pre-approved query shapes batch callers can run."""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from querygate.errors import DefinitionError, UnknownQueryTypeError
from querygate.models.catalog import QueryCatalogEntry
from querygate.models.query import CustomQueryConfig, CustomQueryFilter, TimeUnit


class QueryCatalog:
    """Immutable set of catalog entries keyed by id.

    like the schema registry it is built once at startup and shared by reference.
    """

    def __init__(self, entries: Iterable[QueryCatalogEntry]) -> None:
        by_id: dict[str, QueryCatalogEntry] = {}
        for entry in entries:
            if entry.id in by_id:
                raise DefinitionError(f"Duplicate query type: {entry.id}")
            by_id[entry.id] = entry
        self._entries: Mapping[str, QueryCatalogEntry] = MappingProxyType(by_id)

    @property
    def entries(self) -> Mapping[str, QueryCatalogEntry]:
        return self._entries

    def ids(self) -> list[str]:
        return sorted(self._entries)

    def get(self, query_type: str) -> QueryCatalogEntry:
        entry = self._entries.get(query_type)
        if entry is None:
            raise UnknownQueryTypeError(query_type)
        return entry

    def resolve(
        self,
        query_type: str,
        time_unit: TimeUnit = TimeUnit.DAY,
        filters: list[CustomQueryFilter] | None = None,
        group_by: list[str] | None = None,
        website_domain: str | None = None,
    ) -> CustomQueryConfig:
        """Turn a catalog id into a concrete config.

        raises UnknownQueryTypeError for ids that are not in the catalog and
        CatalogFilterError when a customizable entry gets a filter it does not allow.
        """
        entry = self.get(query_type)
        return entry.build_config(
            time_unit=time_unit,
            filters=filters,
            group_by=group_by,
            website_domain=website_domain,
        )

    def __contains__(self, query_type: object) -> bool:
        return query_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # defined last: inside the class body the name shadows the builtin in annotations
    def list(self) -> dict[str, dict]:
        """Public introspection shape: allowed filters, customizable, default limit."""
        return {entry_id: self._entries[entry_id].public_config() for entry_id in self.ids()}
