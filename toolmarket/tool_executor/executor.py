"""
Tool Executor implementation.

Runs one invocation of a registered tool: validate the caller's parameters,
call the tool's HTTP endpoint under its retry policy, and append exactly one
usage record describing the outcome.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

from toolmarket.config import settings
from toolmarket.tool_executor.models import ExecutionBilling, ExecutionResult, HttpRequest, HttpResponse
from toolmarket.tool_executor.transport import AiohttpTransport, HttpTransport
from toolmarket.tool_registry.models import HttpMethod, ToolDefinition
from toolmarket.usage_ledger import Billing, UsageLedger, UsageRecord, UsageResponse
from toolmarket.utils.error_handling import (
    ExecutionCancelled,
    ExecutionFailed,
    RetryPolicy,
    ValidationFailed,
    call_with_retry,
)

logger = logging.getLogger(__name__)


def validate_parameters(tool: ToolDefinition, parameters: Dict[str, Any]) -> List[str]:
    """
    Check caller parameters against the tool's declared parameters.

    A parameter that is missing or None counts as absent.

    Returns:
        Every problem found, in declaration order; empty when valid
    """
    errors = []
    for param in tool.parameters:
        value = parameters.get(param.name)
        if value is None:
            if param.required:
                errors.append(f"Required parameter '{param.name}' is missing")
            continue
        errors.extend(param.validate_value(value))
    return errors


def apply_defaults(tool: ToolDefinition, parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Fill absent optional parameters with their declared defaults."""
    outbound = dict(parameters)
    for param in tool.parameters:
        if outbound.get(param.name) is None and param.default_value is not None:
            outbound[param.name] = param.default_value
    return outbound


def _query_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


def build_url(endpoint: str, parameters: Dict[str, Any]) -> str:
    """
    Append parameters to an endpoint as a query string.

    Examples:
        build_url("https://x/y", {"q": "a b"}) -> "https://x/y?q=a+b"
        build_url("https://x/y?k=1", {"flag": True}) -> "https://x/y?k=1&flag=true"
    """
    pairs = [(name, _query_value(value)) for name, value in parameters.items() if value is not None]
    if not pairs:
        return endpoint
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(pairs)}"


def build_headers(tool: ToolDefinition) -> Dict[str, str]:
    """The tool's headers with the content type forced to JSON."""
    headers = {
        name: value
        for name, value in tool.api_config.headers.items()
        if name.lower() != "content-type"
    }
    headers["Content-Type"] = "application/json"
    return headers


def build_request(tool: ToolDefinition, parameters: Dict[str, Any]) -> HttpRequest:
    """Build the outbound request for a validated invocation."""
    outbound = apply_defaults(tool, parameters)
    method = tool.api_config.method
    headers = build_headers(tool)

    if method == HttpMethod.GET:
        return HttpRequest(url=build_url(tool.api_config.endpoint, outbound), method=method.value,
                           headers=headers)
    return HttpRequest(url=tool.api_config.endpoint, method=method.value, headers=headers,
                       json_body=outbound)


class ToolExecutor:
    """
    Executes marketplace tools over HTTP and meters every invocation.
    """

    def __init__(self,
                 ledger: UsageLedger,
                 transport: Optional[HttpTransport] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Initialize the Tool Executor.

        Args:
            ledger: Usage ledger receiving one record per execution
            transport: HTTP transport (defaults to aiohttp)
            sleep: Coroutine function used for retry backoff; tests pass a fake clock
        """
        self.ledger = ledger
        self.transport = transport or AiohttpTransport()
        self.sleep = sleep

    def retry_policy_for(self, tool: ToolDefinition) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max(1, tool.api_config.max_retries),
            timeout_seconds=tool.api_config.timeout_ms / 1000,
            base_delay=settings.retry_base_delay_seconds,
            backoff=settings.retry_backoff,
            sleep=self.sleep
        )

    async def execute(self,
                      tool: ToolDefinition,
                      parameters: Optional[Dict[str, Any]],
                      caller_id: str,
                      session_id: str,
                      cancel_event: Optional[asyncio.Event] = None) -> ExecutionResult:
        """
        Execute a tool.

        The caller is expected to have checked that the tool exists and is
        active. Failures are reported in the result, never raised.

        Args:
            tool: The tool to execute
            parameters: Caller-supplied parameters
            caller_id: Who is being billed
            session_id: Caller's session
            cancel_event: Optional event; setting it abandons the execution

        Returns:
            The execution result
        """
        parameters = dict(parameters or {})
        attempts_made = 0

        response = UsageResponse(success=False)
        validation_errors = validate_parameters(tool, parameters)
        # Elapsed time covers the calls only, not validation
        start_time = time.perf_counter()

        if validation_errors:
            error = ValidationFailed(validation_errors)
            logger.info(f"Rejected execution of {tool.tool_id}: {error.message}")
            response.error = error.message
            response.error_type = error.error_type
        else:
            request = build_request(tool, parameters)
            policy = self.retry_policy_for(tool)

            async def attempt_call(attempt: int) -> HttpResponse:
                nonlocal attempts_made
                attempts_made = attempt
                logger.debug(f"Calling {request.method} {request.url} for {tool.tool_id} (attempt {attempt})")
                return await self.transport.send(request)

            try:
                http_response, attempts_made = await call_with_retry(
                    attempt_call, policy, cancel_event=cancel_event, logger_obj=logger
                )
                response.success = True
                response.data = http_response.data
                response.status_code = http_response.status
            except ExecutionFailed as e:
                response.error = e.message
                response.error_type = e.error_type
                response.status_code = e.status_code
                attempts_made = e.attempts
            except ExecutionCancelled as e:
                logger.info(f"Execution of {tool.tool_id} cancelled after {attempts_made} attempt(s)")
                response.error = e.message
                response.error_type = e.error_type
            except Exception as e:
                logger.error(f"Unexpected error executing tool {tool.tool_id}: {e}", exc_info=True)
                response.error = f"Unexpected error: {e}"
                response.error_type = ExecutionFailed.__name__

        response.attempts = attempts_made
        response.execution_time_ms = int((time.perf_counter() - start_time) * 1000)

        record = UsageRecord(
            tool_id=tool.tool_id,
            caller_id=caller_id,
            session_id=session_id,
            parameters=parameters,
            response=response,
            billing=Billing(cost_in_wei=tool.pricing.cost_in_wei)
        )
        usage_record_id = await self._append_record(record)

        if response.success:
            logger.info(f"Executed tool {tool.tool_id} in {response.execution_time_ms}ms "
                        f"({response.attempts} attempt(s))")
        elif response.error_type == ExecutionFailed.__name__:
            logger.warning(f"Execution of tool {tool.tool_id} failed: {response.error}")

        return ExecutionResult(
            success=response.success,
            tool_id=tool.tool_id,
            data=response.data,
            error=response.error,
            error_type=response.error_type,
            validation_errors=validation_errors,
            status_code=response.status_code,
            execution_time_ms=response.execution_time_ms,
            attempts=response.attempts,
            billing=ExecutionBilling(cost_in_wei=tool.pricing.cost_in_wei, eth_cost=tool.pricing.eth_cost),
            usage_record_id=usage_record_id
        )

    async def _append_record(self, record: UsageRecord) -> Optional[str]:
        try:
            await self.ledger.append(record)
        except Exception as e:
            logger.error(f"Failed to write usage record for tool {record.tool_id}: {e}")
            return None
        return record.record_id
