"""
Tool Executor component.

Validates parameters, calls tool endpoints with retries and meters usage.
"""

from toolmarket.tool_executor.executor import (
    ToolExecutor,
    apply_defaults,
    build_headers,
    build_request,
    build_url,
    validate_parameters,
)
from toolmarket.tool_executor.models import ExecutionBilling, ExecutionResult, HttpRequest, HttpResponse
from toolmarket.tool_executor.transport import AiohttpTransport, HttpTransport, decode_body

__all__ = [
    "ToolExecutor",
    "apply_defaults",
    "build_headers",
    "build_request",
    "build_url",
    "validate_parameters",
    "ExecutionBilling",
    "ExecutionResult",
    "HttpRequest",
    "HttpResponse",
    "AiohttpTransport",
    "HttpTransport",
    "decode_body",
]
