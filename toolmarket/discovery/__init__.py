"""
Discovery Service component.

Semantic search and popularity ranking over the tool registry.
"""

from toolmarket.discovery.discovery import DiscoveryService
from toolmarket.discovery.models import CategorySummary, PopularTool, ScoredTool, ToolSearchFilters

__all__ = ["DiscoveryService", "CategorySummary", "PopularTool", "ScoredTool", "ToolSearchFilters"]
