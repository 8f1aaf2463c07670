"""
Discovery Service implementation.

Ranks registered tools against a natural-language query by cosine similarity
of their embeddings. Candidates are scanned linearly; there is no index.
"""

import logging
from typing import Dict, List, Optional

from toolmarket.config import settings
from toolmarket.discovery.models import CategorySummary, PopularTool, ScoredTool, ToolSearchFilters
from toolmarket.tool_registry import ToolDefinition, ToolFilter, ToolRegistry
from toolmarket.usage_ledger import UsageLedger
from toolmarket.utils.error_handling import EmbeddingUnavailable, EmptyQuery, timer
from toolmarket.utils.openai_client import EmbeddingProvider
from toolmarket.utils.vector import find_most_similar


logger = logging.getLogger(__name__)


class DiscoveryService:
    """
    Semantic search, popularity ranking and category summaries over the
    registry's active tools.
    """

    def __init__(self, registry: ToolRegistry, ledger: UsageLedger, embedder: EmbeddingProvider):
        """
        Initialize the Discovery Service.

        Args:
            registry: Tool registry to read candidates from
            ledger: Usage ledger, for popularity
            embedder: Embedding provider for queries
        """
        self.registry = registry
        self.ledger = ledger
        self.embedder = embedder

    @timer("discovery")
    async def search_globally(self,
                              query: str,
                              filters: Optional[ToolSearchFilters] = None,
                              limit: Optional[int] = None) -> List[ScoredTool]:
        """
        Search the marketplace for tools relevant to a query.

        Args:
            query: Natural-language description of what the caller needs
            filters: Category, cost, tag and owner filters
            limit: Maximum number of results

        Returns:
            Tools ordered by descending similarity

        Raises:
            EmptyQuery: If the query is blank
            EmbeddingUnavailable: If the query could not be embedded
        """
        if query is None or not query.strip():
            raise EmptyQuery("Search query must not be empty", component="discovery")

        filters = filters or ToolSearchFilters()
        if limit is None:
            limit = settings.default_search_limit

        query_embedding = await self._embed_query(query.strip())

        candidates = await self.registry.list_by_criteria(ToolFilter(
            owner_id=filters.owner_id,
            category=filters.category,
            is_active=True,
            is_public=None if filters.owner_id else True,
            max_cost_wei=filters.max_cost_wei,
            tags=filters.tags
        ))
        candidates = [tool for tool in candidates if tool.embedding]
        if not candidates:
            logger.info(f"No candidate tools for query '{query.strip()}'")
            return []

        matches = find_most_similar(
            query_embedding,
            [tool.embedding for tool in candidates],
            top_k=limit
        )
        results = [ScoredTool(tool=candidates[m.index], similarity=m.similarity) for m in matches]

        logger.info(f"Search for '{query.strip()}' returned {len(results)} of {len(candidates)} candidates")
        return results

    async def search_owners_tools(self,
                                  owner_id: str,
                                  query: str,
                                  category: Optional[str] = None,
                                  limit: Optional[int] = None) -> List[ScoredTool]:
        """Search only the tools of one owner, public or private."""
        return await self.search_globally(
            query,
            ToolSearchFilters(owner_id=owner_id, category=category),
            limit=limit
        )

    async def get_popular(self, owner_id: Optional[str] = None, limit: Optional[int] = None) -> List[PopularTool]:
        """
        Rank tools by how often they have been executed.

        Args:
            owner_id: Restrict to one owner's active tools; otherwise all
                active public tools
            limit: Maximum number of results

        Returns:
            Tools ordered by usage count, then success rate, both descending
        """
        if limit is None:
            limit = settings.default_popular_limit
        if limit <= 0:
            return []
        if owner_id is not None:
            criteria = ToolFilter(owner_id=owner_id, is_active=True)
        else:
            criteria = ToolFilter(is_active=True, is_public=True)

        tools = await self.registry.list_by_criteria(criteria)
        if not tools:
            return []

        records = await self.ledger.query_by_tool_ids([tool.tool_id for tool in tools])
        counts: Dict[str, int] = {}
        successes: Dict[str, int] = {}
        for record in records:
            counts[record.tool_id] = counts.get(record.tool_id, 0) + 1
            if record.response.success:
                successes[record.tool_id] = successes.get(record.tool_id, 0) + 1

        popular = []
        for tool in tools:
            count = counts.get(tool.tool_id, 0)
            rate = successes.get(tool.tool_id, 0) / count if count else 0.0
            popular.append(PopularTool(tool=tool, usage_count=count, success_rate=rate))

        popular.sort(key=lambda p: (p.usage_count, p.success_rate), reverse=True)
        return popular[:limit]

    async def categories(self) -> List[CategorySummary]:
        """
        Summarise active public tools by category.

        Returns:
            One summary per category with the tool count and the truncated
            mean cost, ordered by count descending
        """
        tools = await self.registry.list_by_criteria(ToolFilter(is_active=True, is_public=True))

        grouped: Dict[str, List[int]] = {}
        for tool in tools:
            grouped.setdefault(tool.category, []).append(tool.cost_wei)

        summaries = [
            CategorySummary(category=category, count=len(costs), avg_cost_in_wei=str(sum(costs) // len(costs)))
            for category, costs in grouped.items()
        ]
        summaries.sort(key=lambda s: s.count, reverse=True)
        return summaries

    async def tools_by_category(self,
                                category: str,
                                max_cost_wei: Optional[int] = None,
                                limit: int = 20) -> List[ToolDefinition]:
        """
        List active public tools in a category, newest first.

        Args:
            category: Category to match (case-insensitive substring)
            max_cost_wei: Optional price ceiling
            limit: Maximum number of results
        """
        return await self.registry.list_by_criteria(ToolFilter(
            category=category,
            is_active=True,
            is_public=True,
            max_cost_wei=max_cost_wei,
            limit=limit
        ))

    async def _embed_query(self, query: str) -> List[float]:
        try:
            embedding = await self.embedder.embed(query)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to embed search query: {e}")
            raise EmbeddingUnavailable(f"Failed to embed search query: {e}", component="discovery") from e

        if not embedding:
            raise EmbeddingUnavailable("Embedding provider returned an empty vector", component="discovery")
        return [float(value) for value in embedding]
