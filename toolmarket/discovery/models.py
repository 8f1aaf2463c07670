"""
Data models for the Discovery Service.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from toolmarket.tool_registry.models import ToolDefinition
from toolmarket.utils.eth import is_valid_wei


class ToolSearchFilters(BaseModel):
    """Optional narrowing applied before ranking."""
    category: Optional[str] = None
    max_cost_wei: Optional[int] = None
    tags: Optional[List[str]] = None
    owner_id: Optional[str] = None

    @field_validator("max_cost_wei", mode="before")
    @classmethod
    def integer_cost(cls, v):
        if v is None:
            return v
        if not is_valid_wei(v):
            raise ValueError("max_cost_wei must be a non-negative integer")
        return int(v)


class ScoredTool(BaseModel):
    """A search hit and its cosine similarity to the query."""
    tool: ToolDefinition
    similarity: float


class PopularTool(BaseModel):
    tool: ToolDefinition
    usage_count: int = 0
    success_rate: float = 0.0


class CategorySummary(BaseModel):
    category: str
    count: int = Field(ge=0)
    avg_cost_in_wei: str
