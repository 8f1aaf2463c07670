"""
Data models for the Tool Executor component.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HttpRequest(BaseModel):
    """A fully built outbound request for one attempt."""
    url: str
    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    json_body: Optional[Dict[str, Any]] = None


class HttpResponse(BaseModel):
    """A 2xx response; ``data`` is decoded JSON or the raw text."""
    status: int
    data: Any = None


class ExecutionBilling(BaseModel):
    cost_in_wei: str
    eth_cost: Optional[str] = None


class ExecutionResult(BaseModel):
    """What the caller gets back from one execute call."""
    success: bool
    tool_id: str
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    validation_errors: List[str] = Field(default_factory=list)
    status_code: Optional[int] = None
    execution_time_ms: int = 0
    attempts: int = 0
    billing: ExecutionBilling
    usage_record_id: Optional[str] = None
