"""
Tests for the Tool Registry component.
"""

import pytest
from pydantic import ValidationError

from toolmarket.storage import TOOLS_COLLECTION
from toolmarket.tool_registry import (
    NumberParameter,
    ToolDefinition,
    ToolFilter,
    ToolRegistry,
    ToolUpdate,
)
from toolmarket.utils.error_handling import EmbeddingUnavailable, NotFound

from conftest import FailingEmbeddingProvider


@pytest.mark.asyncio
async def test_register_tool(registry, embedder, sample_spec):
    """Test registering a tool stores it with an embedding."""
    tool = await registry.register("owner-1", sample_spec)

    assert isinstance(tool, ToolDefinition)
    assert tool.tool_id.startswith("tool_")
    assert tool.owner_id == "owner-1"
    assert tool.embedding and len(tool.embedding) == 16
    assert tool.created_at == tool.updated_at
    assert tool.created_at.tzinfo is not None
    assert embedder.calls == ["Weather Lookup Current weather forecast for a city weather City name Forecast days"]

    stored = await registry.get_by_id(tool.tool_id)
    assert stored.name == "Weather Lookup"
    assert stored.embedding == tool.embedding


@pytest.mark.asyncio
async def test_register_assigns_fresh_ids(registry, sample_spec):
    first = await registry.register("owner-1", sample_spec)
    second = await registry.register("owner-1", sample_spec)
    assert first.tool_id != second.tool_id


@pytest.mark.asyncio
async def test_register_fails_without_embedding(store, sample_spec):
    """A tool that cannot be embedded is never stored."""
    registry = ToolRegistry(store, FailingEmbeddingProvider())

    with pytest.raises(EmbeddingUnavailable):
        await registry.register("owner-1", sample_spec)

    assert await store.find(TOOLS_COLLECTION) == []


@pytest.mark.asyncio
async def test_register_rejects_empty_embedding(store, sample_spec):
    class EmptyEmbedder:
        async def embed(self, text):
            return []

    registry = ToolRegistry(store, EmptyEmbedder())
    with pytest.raises(EmbeddingUnavailable):
        await registry.register("owner-1", sample_spec)


def test_pricing_normalises_wei(make_spec):
    spec = make_spec(cost_in_wei=2000000000000000000)
    assert spec.pricing.cost_in_wei == "2000000000000000000"
    assert spec.pricing.eth_cost == "2"
    assert spec.pricing.cost_wei == 2 * 10 ** 18


@pytest.mark.parametrize("cost", ["-1", "1.5", 1.5, "abc"])
def test_pricing_rejects_non_integer_wei(make_spec, cost):
    with pytest.raises(ValidationError):
        make_spec(cost_in_wei=cost)


def test_parameter_variants_are_discriminated(make_spec):
    spec = make_spec(parameters=[
        {"name": "n", "type": "number", "validation": {"min": 0}},
        {"name": "flag", "type": "boolean"},
    ])
    assert isinstance(spec.parameters[0], NumberParameter)
    assert spec.parameters[1].type == "boolean"


def test_duplicate_parameter_names_rejected(make_spec):
    with pytest.raises(ValidationError):
        make_spec(parameters=[
            {"name": "q", "type": "string"},
            {"name": "q", "type": "number"},
        ])


def test_invalid_pattern_rejected(make_spec):
    with pytest.raises(ValidationError):
        make_spec(parameters=[{"name": "q", "type": "string", "validation": {"pattern": "(["}}])


def test_method_is_case_insensitive(make_spec):
    assert make_spec(method="get").api_config.method.value == "GET"


def test_tags_are_deduplicated(make_spec):
    spec = make_spec(tags=["weather", "forecast", "weather", " "])
    assert spec.metadata.tags == ["weather", "forecast"]


@pytest.mark.asyncio
async def test_update_without_embedded_fields_keeps_embedding(registry, embedder, sample_spec):
    tool = await registry.register("owner-1", sample_spec)
    calls_before = len(embedder.calls)

    updated = await registry.update(tool.tool_id, ToolUpdate(pricing={"cost_in_wei": "5"}))

    assert updated.pricing.cost_in_wei == "5"
    assert updated.embedding == tool.embedding
    assert updated.updated_at >= tool.updated_at
    assert len(embedder.calls) == calls_before


@pytest.mark.asyncio
async def test_update_description_recomputes_embedding(registry, embedder, sample_spec):
    tool = await registry.register("owner-1", sample_spec)

    updated = await registry.update(tool.tool_id, ToolUpdate(description="Stock quotes and market data"))

    assert updated.description == "Stock quotes and market data"
    assert updated.embedding != tool.embedding
    assert "Stock quotes and market data" in embedder.calls[-1]
    assert (await registry.get_by_id(tool.tool_id)).embedding == updated.embedding


@pytest.mark.asyncio
async def test_update_unknown_tool(registry):
    with pytest.raises(NotFound):
        await registry.update("tool_missing", ToolUpdate(name="x"))


@pytest.mark.asyncio
async def test_update_aborts_when_embedding_fails(store, embedder, sample_spec):
    registry = ToolRegistry(store, embedder)
    tool = await registry.register("owner-1", sample_spec)

    registry.embedder = FailingEmbeddingProvider()
    with pytest.raises(EmbeddingUnavailable):
        await registry.update(tool.tool_id, ToolUpdate(name="Renamed"))

    assert (await registry.get_by_id(tool.tool_id)).name == "Weather Lookup"


@pytest.mark.asyncio
async def test_deactivate_is_idempotent(registry, sample_spec):
    tool = await registry.register("owner-1", sample_spec)

    assert await registry.deactivate(tool.tool_id) is True
    assert await registry.deactivate(tool.tool_id) is False
    assert await registry.deactivate("tool_missing") is False

    stored = await registry.get_by_id(tool.tool_id)
    assert stored.metadata.is_active is False


@pytest.mark.asyncio
async def test_get_by_id_unknown(registry):
    with pytest.raises(NotFound):
        await registry.get_by_id("tool_missing")


@pytest.mark.asyncio
async def test_list_by_criteria(registry, make_spec):
    weather = await registry.register("owner-1", make_spec(cost_in_wei="100", tags=["forecast"]))
    finance = await registry.register("owner-2", make_spec(name="FX", category="Finance", cost_in_wei="900",
                                                           tags=["money"]))
    private = await registry.register("owner-2", make_spec(name="Ledger", category="finance",
                                                           cost_in_wei="50", is_public=False))
    retired = await registry.register("owner-1", make_spec(name="Old"))
    await registry.deactivate(retired.tool_id)

    def ids(tools):
        return {tool.tool_id for tool in tools}

    assert ids(await registry.list_by_criteria(ToolFilter())) == {weather.tool_id, finance.tool_id, private.tool_id}
    assert ids(await registry.list_by_criteria(ToolFilter(category="FIN"))) == {finance.tool_id, private.tool_id}
    assert ids(await registry.list_by_criteria(ToolFilter(owner_id="owner-1", is_active=None))) == {
        weather.tool_id, retired.tool_id
    }
    assert ids(await registry.list_by_criteria(ToolFilter(is_public=True, max_cost_wei=500))) == {weather.tool_id}
    assert ids(await registry.list_by_criteria(ToolFilter(tags=["money", "other"]))) == {finance.tool_id}
    assert len(await registry.list_by_criteria(ToolFilter(limit=2))) == 2


@pytest.mark.asyncio
async def test_list_by_criteria_newest_first(registry, store, make_spec):
    older = await registry.register("owner-1", make_spec(name="Older"))
    newer = await registry.register("owner-1", make_spec(name="Newer"))

    # Push the first tool back in time so ordering does not depend on clock resolution
    document = await store.get(TOOLS_COLLECTION, older.tool_id)
    document["created_at"] = "2020-01-01T00:00:00+00:00"
    await store.replace(TOOLS_COLLECTION, older.tool_id, document)

    tools = await registry.list_by_criteria(ToolFilter(owner_id="owner-1"))
    assert [tool.tool_id for tool in tools] == [newer.tool_id, older.tool_id]


@pytest.mark.asyncio
async def test_partial_metadata_update_keeps_other_flags(registry, make_spec):
    tool = await registry.register("owner-1", make_spec(is_public=False, tags=["a"], version="2.1.0",
                                                        rate_limits={"requests": 10, "window_seconds": 60}))
    await registry.deactivate(tool.tool_id)

    updated = await registry.update(tool.tool_id, ToolUpdate.model_validate({"metadata": {"tags": ["b"]}}))

    assert updated.metadata.tags == ["b"]
    stored = await registry.get_by_id(tool.tool_id)
    assert stored.metadata.tags == ["b"]
    assert stored.metadata.is_public is False
    assert stored.metadata.is_active is False
    assert stored.metadata.version == "2.1.0"
    assert stored.metadata.rate_limits.requests == 10


@pytest.mark.asyncio
async def test_metadata_update_can_publish_and_clear_rate_limits(registry, make_spec):
    tool = await registry.register("owner-1", make_spec(is_public=False,
                                                        rate_limits={"requests": 10, "window_seconds": 60}))

    patch = ToolUpdate.model_validate({"metadata": {"is_public": True, "rate_limits": None}})
    updated = await registry.update(tool.tool_id, patch)

    assert updated.metadata.is_public is True
    assert updated.metadata.rate_limits is None
    assert updated.metadata.is_active is True


def test_metadata_update_cannot_reactivate():
    with pytest.raises(ValidationError):
        ToolUpdate.model_validate({"metadata": {"is_active": True}})


@pytest.mark.parametrize("parameter", [
    {"name": "q", "type": "string", "validation": {"min": 1, "max": 5}},
    {"name": "filters", "type": "object", "validation": {"enum": [{}]}},
    {"name": "ids", "type": "array", "validation": {"min": 1}},
    {"name": "n", "type": "number", "validation": {"pattern": "^[0-9]+$"}},
    {"name": "n", "type": "number", "minimum": 1},
])
def test_unsupported_parameter_rules_rejected(make_spec, parameter):
    with pytest.raises(ValidationError):
        make_spec(parameters=[parameter])
