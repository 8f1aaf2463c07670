"""
Shared fixtures for the tool marketplace tests.
"""

import hashlib
import re
from typing import Any, Dict, List, Optional

import pytest

from toolmarket.storage import InMemoryDocumentStore
from toolmarket.tool_executor import HttpRequest, HttpResponse
from toolmarket.tool_registry import ToolRegistry, ToolSpec
from toolmarket.usage_ledger import UsageLedger


EMBEDDING_DIMENSION = 16


class HashingEmbeddingProvider:
    """Deterministic bag-of-words embedder: each token bumps one hashed dimension."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimension
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            index = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimension
            vector[index] += 1.0
        return vector


class FailingEmbeddingProvider:
    async def embed(self, text: str) -> List[float]:
        raise RuntimeError("embedding service down")


class FakeTransport:
    """
    Transport that replays scripted outcomes, one per attempt.

    Each outcome is an exception to raise or an HttpResponse to return; the
    last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [HttpResponse(status=200, data={"ok": True})]
        self.requests: List[HttpRequest] = []

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        outcome = self.outcomes[min(len(self.requests), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeSleep:
    """Records requested backoff delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def build_spec(name: str = "Weather Lookup",
               description: str = "Current weather forecast for a city",
               category: str = "weather",
               cost_in_wei: Any = "1000000000000000",
               method: str = "POST",
               endpoint: str = "https://api.example.com/weather",
               parameters: Optional[List[Dict[str, Any]]] = None,
               **metadata) -> ToolSpec:
    if parameters is None:
        parameters = [
            {"name": "city", "type": "string", "required": True, "description": "City name"},
            {"name": "days", "type": "number", "description": "Forecast days",
             "validation": {"min": 1, "max": 7}, "default_value": 1},
        ]
    return ToolSpec.model_validate({
        "name": name,
        "description": description,
        "category": category,
        "api_config": {"endpoint": endpoint, "method": method, "timeout_ms": 5000, "max_retries": 3},
        "parameters": parameters,
        "pricing": {"cost_in_wei": cost_in_wei},
        "metadata": metadata,
    })


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def embedder():
    return HashingEmbeddingProvider()


@pytest.fixture
def registry(store, embedder):
    return ToolRegistry(store, embedder)


@pytest.fixture
def ledger(store):
    return UsageLedger(store)


@pytest.fixture
def make_spec():
    """Factory for tool specs; keyword arguments override the weather tool defaults."""
    return build_spec


@pytest.fixture
def sample_spec():
    return build_spec()


@pytest.fixture
def fake_sleep():
    return FakeSleep()
