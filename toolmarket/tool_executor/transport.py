"""
HTTP transport used to call tool endpoints.

A transport performs exactly one attempt. Non-2xx answers are raised as
HttpStatusError and connection problems as RetryableError; retry decisions
belong to the executor.
"""

import json
import logging
from typing import Any, Dict, Optional, Protocol

import aiohttp

from toolmarket.tool_executor.models import HttpRequest, HttpResponse
from toolmarket.utils.error_handling import HttpStatusError, RetryableError

logger = logging.getLogger(__name__)


class HttpTransport(Protocol):
    """Sends one request and returns the decoded 2xx response."""

    async def send(self, request: HttpRequest) -> HttpResponse:
        ...


def decode_body(text: str) -> Any:
    """Decode a response body as JSON, falling back to the raw text."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class AiohttpTransport:
    """
    Transport backed by aiohttp.

    A session may be passed in and is then reused for every request; otherwise
    a short-lived session is opened per request.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session

    async def send(self, request: HttpRequest) -> HttpResponse:
        if self._session is not None:
            return await self._send(self._session, request)

        async with aiohttp.ClientSession() as session:
            return await self._send(session, request)

    async def _send(self, session: aiohttp.ClientSession, request: HttpRequest) -> HttpResponse:
        kwargs: Dict[str, Any] = {"headers": request.headers}
        if request.json_body is not None:
            kwargs["json"] = request.json_body

        try:
            async with session.request(request.method, request.url, **kwargs) as response:
                text = await response.text()
                if response.status < 200 or response.status >= 300:
                    raise HttpStatusError(response.status, response.reason or "", text)
                return HttpResponse(status=response.status, data=decode_body(text))
        except aiohttp.ClientError as e:
            logger.debug(f"Transport error calling {request.method} {request.url}: {e}")
            raise RetryableError(f"Request failed: {e}") from e
