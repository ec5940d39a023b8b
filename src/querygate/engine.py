"""Main QueryEngine interface for querygate."""

import asyncio
import logging
import time
from pathlib import Path

from querygate.cache import CacheProvider, DomainResolver
from querygate.catalog import QueryCatalog
from querygate.compiler.dialects import get_dialect
from querygate.compiler.sql_builder import SQLCompiler
from querygate.config import Settings
from querygate.errors import QueryCompilationError, QueryValidationError
from querygate.executor.base import Executor
from querygate.executor.clickhouse_http import ClickHouseHTTPExecutor
from querygate.executor.duckdb_executor import DuckDBExecutor
from querygate.models.batch import BatchResultEnvelope, DynamicQueryRequest, TenantContext
from querygate.models.query import (
    CompiledQuery,
    CustomQueryConfig,
    CustomQueryRequest,
    CustomQueryResponse,
)
from querygate.orchestrator import BatchOrchestrator
from querygate.parser.loader import load_definitions
from querygate.registry import SchemaRegistry
from querygate.validator import QueryValidator

logger = logging.getLogger(__name__)

INVALID_QUERY_MESSAGE = "Invalid query configuration. Please check your query parameters."
EXECUTION_FAILED_MESSAGE = "Query execution failed. Please try again or contact support."


class QueryEngine:
    """Wires registry, catalog, validator, compiler, executor and orchestrator together.

    the registry and catalog are loaded once here and shared by reference with
    every other component.
    """

    def __init__(
        self,
        executor: Executor,
        definitions_path: str | Path | None = None,
        domain_resolver: DomainResolver | None = None,
        debug: bool = False,
        default_limit: int = 1000,
        max_limit: int = 10_000,
        batch_default_limit: int = 100,
        registry: SchemaRegistry | None = None,
        catalog: QueryCatalog | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            executor: Backend that runs compiled SQL. Its dialect picks the compiler's.
            definitions_path: YAML file or directory, or None for the bundled definitions.
            domain_resolver: Website domain lookup for self-referral exclusion.
            debug: Return detailed error messages from execute_custom.
            registry: Prebuilt registry (with catalog) instead of loading definitions.
        """
        if registry is None or catalog is None:
            # load and validate definitions upfront - fail fast if there are problems
            registry, catalog = load_definitions(definitions_path)

        self.registry = registry
        self.catalog = catalog
        self.executor = executor
        self.debug = debug
        self.default_limit = default_limit
        self.validator = QueryValidator(registry)
        self.compiler = SQLCompiler(registry, get_dialect(executor.dialect), max_limit=max_limit)
        self.orchestrator = BatchOrchestrator(
            catalog,
            self.validator,
            self.compiler,
            executor,
            domain_resolver=domain_resolver,
            default_limit=batch_default_limit,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        domain_lookup=None,
        cache: CacheProvider | None = None,
    ) -> "QueryEngine":
        settings = settings or Settings()
        executor: Executor
        if settings.executor == "clickhouse":
            executor = ClickHouseHTTPExecutor(
                settings.clickhouse_url,
                user=settings.clickhouse_user,
                password=settings.clickhouse_password,
                timeout=settings.clickhouse_timeout,
            )
        else:
            executor = DuckDBExecutor(settings.duckdb_path)

        resolver = None
        if domain_lookup is not None:
            resolver = DomainResolver(
                domain_lookup,
                cache=cache,
                ttl_seconds=settings.domain_cache_ttl,
                stale_seconds=settings.domain_cache_stale,
            )

        return cls(
            executor,
            definitions_path=settings.definitions_path,
            domain_resolver=resolver,
            debug=settings.debug,
            default_limit=settings.default_limit,
            max_limit=settings.max_limit,
            batch_default_limit=settings.batch_default_limit,
        )

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
        """Validate then compile. raises QueryValidationError before any sql exists."""
        self.validator.validate(config)
        return self.compiler.compile(
            config,
            tenant_id=tenant_id,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            limit=limit if limit is not None else self.default_limit,
            offset=offset,
        )

    def execute_custom(self, request: CustomQueryRequest, website_id: str) -> CustomQueryResponse:
        """Validate, compile and run one custom query.

        outside debug mode the caller only gets a generic message; the details
        go to the log.
        """
        start = time.perf_counter()
        try:
            compiled = self.compile(
                request.query,
                tenant_id=website_id,
                start_date=request.start_date,
                end_date=request.end_date,
                timezone=request.timezone or "UTC",
                limit=request.limit,
            )
            rows = self.executor.execute(compiled.sql, compiled.params)
        except (QueryValidationError, QueryCompilationError) as e:
            logger.info("Rejected custom query on %s: %s", request.query.table, e)
            return CustomQueryResponse(
                success=False, error=str(e) if self.debug else INVALID_QUERY_MESSAGE
            )
        except Exception as e:
            logger.exception("Custom query execution error")
            return CustomQueryResponse(
                success=False, error=str(e) if self.debug else EXECUTION_FAILED_MESSAGE
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        return CustomQueryResponse(
            success=True,
            data=rows,
            meta={"rowCount": len(rows), "executionTime": round(elapsed_ms, 2)},
        )

    async def run_batch(
        self, request: DynamicQueryRequest, tenant: TenantContext
    ) -> BatchResultEnvelope:
        return await self.orchestrator.run(request, tenant)

    async def run_batch_many(
        self, requests: list[DynamicQueryRequest], tenant: TenantContext
    ) -> list[BatchResultEnvelope | dict]:
        return await self.orchestrator.run_many(requests, tenant)

    def run_batch_sync(
        self, request: DynamicQueryRequest, tenant: TenantContext
    ) -> BatchResultEnvelope:
        """Blocking wrapper for callers without an event loop (the cli)."""
        return asyncio.run(self.run_batch(request, tenant))

    def list_query_types(self) -> dict:
        return {"types": self.catalog.ids(), "configs": self.catalog.list()}

    def list_tables(self) -> list[dict]:
        return self.registry.list_tables()

    def close(self) -> None:
        """Close the executor."""
        self.executor.close()

    def __enter__(self) -> "QueryEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
