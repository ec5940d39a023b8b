"""Batch orchestration of catalog queries.

a request names several catalog entries; each one is resolved, validated,
compiled and executed on its own and lands in its own result slot. one bad
parameter never takes the others down with it - the envelope always comes
back well-formed, even when every slot failed.

within a request the executions run concurrently (gathered, all settle before
the envelope is built). separate top-level requests in a list run one after
another to bound the load on the store.
"""

import asyncio
import logging

from querygate.cache import DomainResolver
from querygate.catalog import QueryCatalog
from querygate.compiler.sql_builder import SQLCompiler, clamp_limit
from querygate.errors import QueryGateError
from querygate.executor.base import Executor
from querygate.models.batch import (
    BatchMeta,
    BatchResultEnvelope,
    BatchResultItem,
    DynamicQueryRequest,
    TenantContext,
)
from querygate.validator import QueryValidator

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 100


class BatchOrchestrator:
    def __init__(
        self,
        catalog: QueryCatalog,
        validator: QueryValidator,
        compiler: SQLCompiler,
        executor: Executor,
        domain_resolver: DomainResolver | None = None,
        default_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self.catalog = catalog
        self.validator = validator
        self.compiler = compiler
        self.executor = executor
        self.domain_resolver = domain_resolver
        self.default_limit = default_limit

    async def run(self, request: DynamicQueryRequest, tenant: TenantContext) -> BatchResultEnvelope:
        """Run every parameter of one request concurrently and collect the envelope."""
        limit = clamp_limit(request.limit or self.default_limit, self.compiler.max_limit)
        page = request.page or 1
        website_domain = await self._resolve_domain(tenant.website_id)

        items = await asyncio.gather(
            *(
                self._run_parameter(parameter, request, tenant, page, website_domain)
                for parameter in request.parameters
            )
        )

        return BatchResultEnvelope(
            query_id=request.id,
            data=list(items),
            meta=BatchMeta(
                parameters=request.parameters,
                total_parameters=len(request.parameters),
                page=page,
                limit=limit,
                filters_applied=len(request.filters),
            ),
        )

    async def run_many(
        self, requests: list[DynamicQueryRequest], tenant: TenantContext
    ) -> list[BatchResultEnvelope | dict]:
        """Run top-level requests one at a time.

        run() already isolates parameter failures, so anything escaping it is
        unexpected - it becomes a {success: false} result for that request only.
        """
        results: list[BatchResultEnvelope | dict] = []
        for request in requests:
            try:
                results.append(await self.run(request, tenant))
            except Exception as e:
                logger.exception("Batch request %s failed", request.id)
                results.append({"success": False, "error": str(e) or "Query failed"})
        return results

    async def _run_parameter(
        self,
        parameter: str,
        request: DynamicQueryRequest,
        tenant: TenantContext,
        page: int,
        website_domain: str | None,
    ) -> BatchResultItem:
        try:
            entry = self.catalog.get(parameter)
            # an entry declares its own page size when the request does not
            limit = clamp_limit(request.limit or entry.limit, self.compiler.max_limit)
            config = entry.build_config(
                time_unit=request.time_unit,
                filters=request.filters,
                group_by=request.group_by,
                website_domain=website_domain,
            )
            self.validator.validate(config)
            compiled = self.compiler.compile(
                config,
                tenant_id=tenant.website_id,
                start_date=tenant.start_date,
                end_date=tenant.end_date,
                timezone=tenant.timezone,
                limit=limit,
                offset=(page - 1) * limit,
            )
            rows = await asyncio.to_thread(self.executor.execute, compiled.sql, compiled.params)
        except QueryGateError as e:
            logger.warning("Parameter %s failed: %s", parameter, e)
            return BatchResultItem(parameter=parameter, success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception("Parameter %s failed unexpectedly", parameter)
            return BatchResultItem(
                parameter=parameter,
                success=False,
                error=str(e) or "Query failed",
                error_kind="ExecutionError",
            )

        logger.debug("Parameter %s returned %d rows", parameter, len(rows))
        return BatchResultItem(parameter=parameter, success=True, data=rows or [])

    async def _resolve_domain(self, website_id: str) -> str | None:
        if self.domain_resolver is None:
            return None
        try:
            return await asyncio.to_thread(self.domain_resolver.resolve, website_id)
        except Exception:
            # the cache backend failing only costs us the self-referral exclusion
            logger.exception("Domain lookup for %s failed", website_id)
            return None
