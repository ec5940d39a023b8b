"""FastAPI surface for the query engine.

routes delegate to QueryEngine. authentication and rate limiting sit in front
of this app and are not handled here; the tenant comes from the website_id
query parameter.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from querygate.config import get_settings
from querygate.engine import QueryEngine
from querygate.errors import QueryGateError
from querygate.models.batch import DynamicQueryRequest, TenantContext
from querygate.models.query import (
    CustomQueryConfig,
    CustomQueryFilter,
    CustomQueryRequest,
    CustomQuerySelect,
    TimeUnit,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/query", tags=["Query"])


class CompileRequest(BaseModel):
    """Body of POST /query/compile: a config plus range and paging."""

    model_config = ConfigDict(populate_by_name=True)

    table: str
    selects: list[CustomQuerySelect]
    filters: list[CustomQueryFilter] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list, alias="groupBy")
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    time_unit: TimeUnit | None = Field(default=None, alias="timeUnit")  # buckets by time when set
    timezone: str = "UTC"
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    def to_config(self) -> CustomQueryConfig:
        return CustomQueryConfig(
            table=self.table,
            selects=self.selects,
            filters=self.filters,
            group_by=self.group_by,
            time_bucket=self.time_unit,
        )


def get_engine(request: Request) -> QueryEngine:
    return request.app.state.engine


def get_tenant(
    website_id: Annotated[str, Query()],
    start_date: Annotated[str, Query()],
    end_date: Annotated[str, Query()],
    timezone: Annotated[str | None, Query()] = None,
    x_timezone: Annotated[str | None, Header()] = None,
) -> TenantContext:
    return TenantContext(
        website_id=website_id,
        start_date=start_date,
        end_date=end_date,
        timezone=x_timezone or timezone or "UTC",
    )


engine_dep = Annotated[QueryEngine, Depends(get_engine)]
tenant_dep = Annotated[TenantContext, Depends(get_tenant)]


@router.get("/types")
def query_types(engine: engine_dep) -> dict[str, Any]:
    """List the catalog entries batch requests can name."""
    return {"success": True, **engine.list_query_types()}


@router.get("/tables")
def query_tables(engine: engine_dep) -> dict[str, Any]:
    """List the tables and columns custom queries can use."""
    return {"success": True, "tables": engine.list_tables()}


@router.post("/compile")
def compile_query(
    body: CompileRequest,
    engine: engine_dep,
    website_id: Annotated[str, Query()],
) -> dict[str, Any]:
    """Validate and compile a custom query without running it."""
    try:
        compiled = engine.compile(
            body.to_config(),
            tenant_id=website_id,
            start_date=body.start_date,
            end_date=body.end_date,
            timezone=body.timezone,
            limit=body.limit,
            offset=body.offset,
        )
    except QueryGateError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "sql": compiled.sql, "params": compiled.params}


@router.post("/custom")
def custom_query(
    body: CustomQueryRequest,
    engine: engine_dep,
    website_id: Annotated[str, Query()],
) -> dict[str, Any]:
    """Run a custom query for one website."""
    return engine.execute_custom(body, website_id).model_dump(exclude_none=True)


@router.post("")
async def run_query(
    body: Annotated[DynamicQueryRequest | list[DynamicQueryRequest], Body()],
    engine: engine_dep,
    tenant: tenant_dep,
) -> dict[str, Any]:
    """Run one batch request, or a list of them one after another."""
    try:
        if isinstance(body, list):
            results = await engine.run_batch_many(body, tenant)
            return {
                "success": True,
                "batch": True,
                "results": [
                    r if isinstance(r, dict) else {"success": True, **r.to_wire()}
                    for r in results
                ],
            }

        envelope = await engine.run_batch(body, tenant)
    except Exception as e:
        logger.exception("Query request failed")
        return {"success": False, "error": str(e) or "Query failed"}
    return {"success": True, **envelope.to_wire()}


def create_app(engine: QueryEngine | None = None) -> FastAPI:
    """Build the app around an engine (from settings when none is given)."""
    if engine is None:
        settings = get_settings()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        engine = QueryEngine.from_settings(settings)

    app = FastAPI(title="querygate", version="0.1.0")
    app.state.engine = engine
    app.include_router(router)
    return app
