"""
Tests for the Discovery Service.
"""

import pytest

from toolmarket.discovery import DiscoveryService, ScoredTool, ToolSearchFilters
from toolmarket.usage_ledger import Billing, UsageRecord, UsageResponse
from toolmarket.utils.error_handling import EmbeddingUnavailable, EmptyQuery

from conftest import FailingEmbeddingProvider


@pytest.fixture
def discovery(registry, ledger, embedder):
    return DiscoveryService(registry, ledger, embedder)


async def _register_catalog(registry, make_spec):
    weather = await registry.register("owner-1", make_spec(
        name="Weather Lookup", description="weather forecast temperature rain", category="weather",
        cost_in_wei="300"))
    stocks = await registry.register("owner-2", make_spec(
        name="Stock Quotes", description="stock price market ticker", category="finance",
        cost_in_wei="700", tags=["markets"]))
    fx = await registry.register("owner-2", make_spec(
        name="Currency Converter", description="currency exchange rate money", category="finance",
        cost_in_wei="200"))
    private = await registry.register("owner-2", make_spec(
        name="Private Weather", description="weather forecast temperature rain", category="weather",
        cost_in_wei="100", is_public=False))
    return weather, stocks, fx, private


async def _use(ledger, tool, success, caller="caller-1"):
    await ledger.append(UsageRecord(
        tool_id=tool.tool_id,
        caller_id=caller,
        session_id="s-1",
        response=UsageResponse(success=success, attempts=1),
        billing=Billing(cost_in_wei=tool.pricing.cost_in_wei)
    ))


@pytest.mark.asyncio
async def test_search_ranks_by_similarity(discovery, registry, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)

    results = await discovery.search_globally("weather forecast temperature rain")

    assert all(isinstance(r, ScoredTool) for r in results)
    assert results[0].tool.tool_id == weather.tool_id
    assert private.tool_id not in {r.tool.tool_id for r in results}
    similarities = [r.similarity for r in results]
    assert similarities == sorted(similarities, reverse=True)


@pytest.mark.asyncio
async def test_search_rejects_blank_query(discovery):
    with pytest.raises(EmptyQuery):
        await discovery.search_globally("   ")


@pytest.mark.asyncio
async def test_search_embeds_trimmed_query(discovery, embedder, registry, make_spec):
    await _register_catalog(registry, make_spec)
    await discovery.search_globally("  stock price  ")
    assert embedder.calls[-1] == "stock price"


@pytest.mark.asyncio
async def test_search_applies_filters(discovery, registry, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)

    finance = await discovery.search_globally("stock price", ToolSearchFilters(category="FINANCE"))
    assert {r.tool.tool_id for r in finance} == {stocks.tool_id, fx.tool_id}

    cheap = await discovery.search_globally("stock price", ToolSearchFilters(max_cost_wei="250"))
    assert {r.tool.tool_id for r in cheap} == {fx.tool_id}

    tagged = await discovery.search_globally("anything", ToolSearchFilters(tags=["markets"]))
    assert [r.tool.tool_id for r in tagged] == [stocks.tool_id]


@pytest.mark.asyncio
async def test_search_limit(discovery, registry, make_spec):
    await _register_catalog(registry, make_spec)
    assert len(await discovery.search_globally("weather", limit=1)) == 1


@pytest.mark.asyncio
async def test_owner_search_includes_private_tools(discovery, registry, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)

    results = await discovery.search_owners_tools("owner-2", "weather forecast")

    assert {r.tool.tool_id for r in results} == {stocks.tool_id, fx.tool_id, private.tool_id}
    assert results[0].tool.tool_id == private.tool_id


@pytest.mark.asyncio
async def test_search_skips_inactive_tools(discovery, registry, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)
    await registry.deactivate(weather.tool_id)

    results = await discovery.search_globally("weather forecast temperature rain")
    assert weather.tool_id not in {r.tool.tool_id for r in results}


@pytest.mark.asyncio
async def test_search_with_empty_inventory(discovery):
    assert await discovery.search_globally("anything") == []


@pytest.mark.asyncio
async def test_search_reports_embedding_failure(registry, ledger, make_spec):
    discovery = DiscoveryService(registry, ledger, FailingEmbeddingProvider())
    with pytest.raises(EmbeddingUnavailable):
        await discovery.search_globally("weather")


@pytest.mark.asyncio
async def test_get_popular_orders_by_usage_then_success(discovery, registry, ledger, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)
    for success in (True, True, False):
        await _use(ledger, weather, success)
    for success in (True, True, True):
        await _use(ledger, stocks, success)
    await _use(ledger, private, True)

    popular = await discovery.get_popular(limit=5)

    assert [p.tool.tool_id for p in popular] == [stocks.tool_id, weather.tool_id, fx.tool_id]
    assert popular[0].usage_count == 3
    assert popular[0].success_rate == 1.0
    assert popular[1].success_rate == pytest.approx(2 / 3)
    assert popular[2].usage_count == 0
    assert popular[2].success_rate == 0.0


@pytest.mark.asyncio
async def test_get_popular_for_owner_includes_private(discovery, registry, ledger, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)
    await _use(ledger, private, True)

    popular = await discovery.get_popular(owner_id="owner-2", limit=1)

    assert [p.tool.tool_id for p in popular] == [private.tool_id]


@pytest.mark.asyncio
async def test_categories(discovery, registry, make_spec):
    await _register_catalog(registry, make_spec)
    await registry.register("owner-3", make_spec(category="finance", cost_in_wei="1"))

    summaries = await discovery.categories()

    assert [s.category for s in summaries] == ["finance", "weather"]
    assert summaries[0].count == 3
    # (700 + 200 + 1) // 3
    assert summaries[0].avg_cost_in_wei == "300"
    # the private weather tool is excluded
    assert summaries[1].count == 1
    assert summaries[1].avg_cost_in_wei == "300"


@pytest.mark.asyncio
async def test_categories_empty(discovery):
    assert await discovery.categories() == []


@pytest.mark.asyncio
async def test_tools_by_category(discovery, registry, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)

    tools = await discovery.tools_by_category("finance", max_cost_wei=500)

    assert [tool.tool_id for tool in tools] == [fx.tool_id]


@pytest.mark.asyncio
async def test_zero_limit_returns_nothing(discovery, registry, ledger, make_spec):
    weather, stocks, fx, private = await _register_catalog(registry, make_spec)
    await _use(ledger, weather, True)

    assert await discovery.search_globally("weather", limit=0) == []
    assert await discovery.get_popular(limit=0) == []
