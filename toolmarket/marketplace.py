"""
Marketplace facade.

Wires the registry, discovery, executor, ledger and analytics components
together and exposes every marketplace operation with a uniform
OperationResult. Expected domain failures come back as unsuccessful results;
contract violations such as DimensionMismatch propagate.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from toolmarket.analytics import AnalyticsAggregator
from toolmarket.config import settings
from toolmarket.discovery import DiscoveryService, ToolSearchFilters
from toolmarket.storage import DocumentStore, FileDocumentStore
from toolmarket.tool_executor import HttpTransport, ToolExecutor
from toolmarket.tool_registry import ToolFilter, ToolRegistry, ToolSpec, ToolUpdate
from toolmarket.usage_ledger import UsageLedger
from toolmarket.utils.error_handling import (
    DimensionMismatch,
    EmptyInput,
    MarketplaceError,
    NotFound,
    ToolInactive,
    ValidationFailed,
)
from toolmarket.utils.openai_client import EmbeddingProvider, OpenAIEmbeddingProvider

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class OperationResult(BaseModel):
    """Outcome of a marketplace operation."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: MarketplaceError) -> "OperationResult":
        return cls(success=False, error=error.message, error_type=error.error_type,
                   data=error.details or None)


def _coerce(model: Type[M], value: Union[M, Dict[str, Any], None], component: str) -> Optional[M]:
    """Accept a model instance or a plain mapping, reporting bad input as ValidationFailed."""
    if value is None or isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationFailed(errors, component=component) from e


class Marketplace:
    """
    Entry point for hosts (HTTP layer, CLI, conversational helpers).
    """

    def __init__(self,
                 store: DocumentStore,
                 embedder: EmbeddingProvider,
                 transport: Optional[HttpTransport] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Initialize the marketplace.

        Args:
            store: Document store for tools and usage records
            embedder: Embedding provider for registration and search
            transport: HTTP transport for tool calls (defaults to aiohttp)
            sleep: Coroutine function used for retry backoff
        """
        self.store = store
        self.registry = ToolRegistry(store, embedder)
        self.ledger = UsageLedger(store)
        self.discovery = DiscoveryService(self.registry, self.ledger, embedder)
        self.executor = ToolExecutor(self.ledger, transport=transport, sleep=sleep)
        self.analytics = AnalyticsAggregator(self.registry, self.ledger)

    @classmethod
    def from_settings(cls) -> "Marketplace":
        """Build a marketplace backed by the file store and OpenAI embeddings."""
        return cls(FileDocumentStore(settings.data_dir), OpenAIEmbeddingProvider())

    async def _run(self, operation: str, call: Callable[[], Awaitable[Any]]) -> OperationResult:
        try:
            return OperationResult.ok(await call())
        except (DimensionMismatch, EmptyInput):
            raise
        except MarketplaceError as e:
            logger.warning(f"{operation} failed ({e.error_type}): {e.message}")
            return OperationResult.fail(e)

    async def _owned_tool(self, tool_id: str, owner_id: Optional[str]):
        tool = await self.registry.get_by_id(tool_id)
        if owner_id is not None and tool.owner_id != owner_id:
            raise NotFound(f"Tool '{tool_id}' not found", component="marketplace", details={"tool_id": tool_id})
        return tool

    # Registry operations

    async def register_tool(self, owner_id: str, spec: Union[ToolSpec, Dict[str, Any]]) -> OperationResult:
        async def call():
            return await self.registry.register(owner_id, _coerce(ToolSpec, spec, "tool_registry"))
        return await self._run("register_tool", call)

    async def update_tool(self,
                          tool_id: str,
                          patch: Union[ToolUpdate, Dict[str, Any]],
                          owner_id: Optional[str] = None) -> OperationResult:
        """Update a tool; when ``owner_id`` is given, only that owner's tool is touched."""
        async def call():
            update = _coerce(ToolUpdate, patch, "tool_registry")
            await self._owned_tool(tool_id, owner_id)
            return await self.registry.update(tool_id, update)
        return await self._run("update_tool", call)

    async def deactivate_tool(self, tool_id: str, owner_id: Optional[str] = None) -> OperationResult:
        """Deactivate a tool; ``data`` is True only if the tool was flipped."""
        async def call():
            if owner_id is not None:
                try:
                    await self._owned_tool(tool_id, owner_id)
                except NotFound:
                    return False
            return await self.registry.deactivate(tool_id)
        return await self._run("deactivate_tool", call)

    async def get_tool(self, tool_id: str) -> OperationResult:
        return await self._run("get_tool", lambda: self.registry.get_by_id(tool_id))

    async def list_tools(self, criteria: Union[ToolFilter, Dict[str, Any], None] = None) -> OperationResult:
        async def call():
            return await self.registry.list_by_criteria(_coerce(ToolFilter, criteria, "tool_registry") or ToolFilter())
        return await self._run("list_tools", call)

    # Discovery operations

    async def search_global(self,
                            query: str,
                            filters: Union[ToolSearchFilters, Dict[str, Any], None] = None,
                            limit: Optional[int] = None) -> OperationResult:
        async def call():
            return await self.discovery.search_globally(
                query, _coerce(ToolSearchFilters, filters, "discovery"), limit=limit
            )
        return await self._run("search_global", call)

    async def search_own(self,
                         owner_id: str,
                         query: str,
                         category: Optional[str] = None,
                         limit: Optional[int] = None) -> OperationResult:
        return await self._run(
            "search_own",
            lambda: self.discovery.search_owners_tools(owner_id, query, category=category, limit=limit)
        )

    async def popular_tools(self, owner_id: Optional[str] = None, limit: Optional[int] = None) -> OperationResult:
        return await self._run("popular_tools", lambda: self.discovery.get_popular(owner_id=owner_id, limit=limit))

    async def categories(self) -> OperationResult:
        return await self._run("categories", self.discovery.categories)

    async def tools_by_category(self,
                                category: str,
                                max_cost_wei: Optional[int] = None,
                                limit: int = 20) -> OperationResult:
        return await self._run(
            "tools_by_category",
            lambda: self.discovery.tools_by_category(category, max_cost_wei=max_cost_wei, limit=limit)
        )

    # Execution

    async def execute_tool(self,
                           tool_id: str,
                           parameters: Optional[Dict[str, Any]],
                           caller_id: str,
                           session_id: Optional[str] = None,
                           cancel_event: Optional[asyncio.Event] = None) -> OperationResult:
        """
        Execute a tool on behalf of a caller.

        Unknown and inactive tools are rejected before anything is recorded.
        Otherwise ``data`` holds the ExecutionResult, whether or not the
        execution succeeded.
        """
        try:
            tool = await self.registry.get_by_id(tool_id)
            if not tool.metadata.is_active:
                raise ToolInactive(f"Tool '{tool_id}' is not active", component="marketplace",
                                   details={"tool_id": tool_id})
        except MarketplaceError as e:
            logger.warning(f"execute_tool rejected ({e.error_type}): {e.message}")
            return OperationResult.fail(e)

        result = await self.executor.execute(
            tool,
            parameters,
            caller_id=caller_id,
            session_id=session_id or f"session_{uuid.uuid4().hex}",
            cancel_event=cancel_event
        )
        return OperationResult(success=result.success, data=result, error=result.error,
                               error_type=result.error_type)

    # Analytics

    async def analytics_summary(self, owner_id: str, timeframe: str = "30d", group_by: str = "day") -> OperationResult:
        return await self._run(
            "analytics_summary",
            lambda: self.analytics.summary_for(owner_id, timeframe=timeframe, group_by=group_by)
        )

    async def analytics_revenue(self, owner_id: str, timeframe: str = "30d") -> OperationResult:
        return await self._run("analytics_revenue", lambda: self.analytics.revenue_for(owner_id, timeframe=timeframe))

    async def analytics_performance(self,
                                    owner_id: str,
                                    tool_id: Optional[str] = None,
                                    timeframe: str = "30d") -> OperationResult:
        return await self._run(
            "analytics_performance",
            lambda: self.analytics.performance_for(owner_id, tool_id=tool_id, timeframe=timeframe)
        )

    # Settlement call-back

    async def record_settlement(self,
                                record_id: str,
                                transaction_hash: str,
                                owner_id: Optional[str] = None) -> OperationResult:
        """
        Mark a usage record as paid.

        When ``owner_id`` is given, only records of that owner's tools can be
        settled; anything else is reported as NotFound.
        """
        async def call():
            if owner_id is not None:
                record = await self.ledger.get(record_id)
                try:
                    await self._owned_tool(record.tool_id, owner_id)
                except NotFound:
                    raise NotFound(f"Usage record '{record_id}' not found", component="marketplace",
                                   details={"record_id": record_id})
            return await self.ledger.record_settlement(record_id, transaction_hash)
        return await self._run("record_settlement", call)
