"""
API endpoints for the tool marketplace.

This module exposes the Marketplace facade over HTTP. Caller identity is
resolved upstream and arrives in the ``X-Caller-Id`` header; it is trusted
as-is.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Path, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from toolmarket.config import settings
from toolmarket.marketplace import Marketplace, OperationResult


# Set up logging
logger = logging.getLogger(__name__)

START_TIME = datetime.now()

ERROR_STATUS_CODES = {
    "ValidationFailed": 400,
    "EmptyQuery": 400,
    "NotFound": 404,
    "ToolInactive": 409,
    "EmbeddingUnavailable": 503,
    "ExecutionFailed": 502,
    "ExecutionCancelled": 499,
}

# Create router
router = APIRouter(
    prefix="/tools",
    tags=["tools"],
    responses={404: {"description": "Not found"}}
)

_marketplace: Optional[Marketplace] = None


class ExecuteRequest(BaseModel):
    parameters: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None


class SettlementRequest(BaseModel):
    transaction_hash: str = Field(min_length=1)


# Dependency for the marketplace
def get_marketplace() -> Marketplace:
    """Get the process marketplace instance, built from settings on first use."""
    global _marketplace
    if _marketplace is None:
        _marketplace = Marketplace.from_settings()
    return _marketplace


# Dependency for caller identity
def get_caller_id(x_caller_id: str = Header(..., alias="X-Caller-Id", min_length=1)) -> str:
    return x_caller_id


def to_response(result: OperationResult, success_status: int = 200) -> JSONResponse:
    """Render an OperationResult, mapping domain failures to HTTP status codes."""
    if result.success:
        status_code = success_status
    else:
        status_code = ERROR_STATUS_CODES.get(result.error_type, 500)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("")
async def register_tool(
    spec: Dict[str, Any],
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """
    Register a tool owned by the caller.

    Args:
        spec: Tool definition (name, description, category, api_config,
            parameters, pricing, metadata)

    Returns:
        The stored tool
    """
    return to_response(await marketplace.register_tool(caller_id, spec), success_status=201)


@router.get("/mine")
async def list_my_tools(
    category: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    limit: Optional[int] = Query(None, gt=0),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """List the caller's tools, newest first."""
    criteria = {
        "owner_id": caller_id,
        "category": category,
        "is_active": None if include_inactive else True,
        "limit": limit,
    }
    return to_response(await marketplace.list_tools(criteria))


@router.get("/search")
async def search_tools(
    q: str = Query(..., description="Natural-language query"),
    category: Optional[str] = Query(None),
    max_cost_wei: Optional[str] = Query(None),
    tags: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, gt=0),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Search all public tools by similarity to the query."""
    filters = {"category": category, "max_cost_wei": max_cost_wei, "tags": tags}
    return to_response(await marketplace.search_global(q, filters, limit=limit))


@router.get("/mine/search")
async def search_my_tools(
    q: str = Query(..., description="Natural-language query"),
    category: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, gt=0),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Search the caller's own tools, public or private."""
    return to_response(await marketplace.search_own(caller_id, q, category=category, limit=limit))


@router.get("/popular")
async def popular_tools(
    owner_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, gt=0),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Most used tools, overall or for one owner."""
    return to_response(await marketplace.popular_tools(owner_id=owner_id, limit=limit))


@router.get("/categories")
async def categories(marketplace: Marketplace = Depends(get_marketplace)):
    """Categories of public tools with counts and average cost."""
    return to_response(await marketplace.categories())


@router.get("/category/{category}")
async def tools_in_category(
    category: str = Path(..., description="Category to browse"),
    max_cost_wei: Optional[int] = Query(None, ge=0),
    limit: int = Query(20, gt=0),
    marketplace: Marketplace = Depends(get_marketplace)
):
    return to_response(await marketplace.tools_by_category(category, max_cost_wei=max_cost_wei, limit=limit))


@router.get("/analytics/summary")
async def analytics_summary(
    timeframe: str = Query("30d"),
    group_by: str = Query("day"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Usage of the caller's tools grouped by time bucket."""
    return to_response(await marketplace.analytics_summary(caller_id, timeframe=timeframe, group_by=group_by))


@router.get("/analytics/revenue")
async def analytics_revenue(
    timeframe: str = Query("30d"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Settled revenue of the caller's tools."""
    return to_response(await marketplace.analytics_revenue(caller_id, timeframe=timeframe))


@router.get("/analytics/performance")
async def analytics_performance(
    tool_id: Optional[str] = Query(None),
    timeframe: str = Query("30d"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Reliability and latency of the caller's tools."""
    return to_response(await marketplace.analytics_performance(caller_id, tool_id=tool_id, timeframe=timeframe))


@router.post("/usage/{record_id}/settlement")
async def record_settlement(
    settlement: SettlementRequest,
    record_id: str = Path(..., description="Usage record that was paid for"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Settlement call-back: the tool's owner marks one of its usage records as paid."""
    return to_response(await marketplace.record_settlement(record_id, settlement.transaction_hash,
                                                           owner_id=caller_id))


@router.get("/{tool_id}")
async def get_tool(
    tool_id: str = Path(..., description="The tool ID"),
    marketplace: Marketplace = Depends(get_marketplace)
):
    return to_response(await marketplace.get_tool(tool_id))


@router.patch("/{tool_id}")
async def update_tool(
    patch: Dict[str, Any],
    tool_id: str = Path(..., description="The tool ID"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Update one of the caller's tools."""
    return to_response(await marketplace.update_tool(tool_id, patch, owner_id=caller_id))


@router.delete("/{tool_id}")
async def deactivate_tool(
    tool_id: str = Path(..., description="The tool ID"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Deactivate one of the caller's tools; ``data`` is False if nothing changed."""
    return to_response(await marketplace.deactivate_tool(tool_id, owner_id=caller_id))


@router.post("/{tool_id}/execute")
async def execute_tool(
    request: ExecuteRequest,
    tool_id: str = Path(..., description="The tool ID"),
    caller_id: str = Depends(get_caller_id),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """
    Execute a tool on behalf of the caller.

    Returns:
        The execution result; every accepted call is metered
    """
    result = await marketplace.execute_tool(tool_id, request.parameters, caller_id,
                                            session_id=request.session_id)
    return to_response(result)


app = FastAPI(
    title="Tool Marketplace",
    description="Register, discover, execute and meter third-party tools",
    version="1.0.0"
)
app.include_router(router)


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "uptime_seconds": (datetime.now() - START_TIME).total_seconds()
    }


def run_api(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False) -> None:
    """
    Run the API server with uvicorn.

    Args:
        host: Host to bind to (defaults to settings)
        port: Port to bind to (defaults to settings)
        reload: Reload on code changes
    """
    import uvicorn

    host = host or settings.api_host
    port = port or settings.api_port
    logger.info(f"Starting tool marketplace API on {host}:{port}")
    uvicorn.run("toolmarket.api:app", host=host, port=port, reload=reload,
                log_level=settings.log_level.lower())
