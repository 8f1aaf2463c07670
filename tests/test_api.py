"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from toolmarket.api import app, get_marketplace
from toolmarket.marketplace import Marketplace
from toolmarket.tool_executor import HttpResponse

from conftest import FakeTransport


TOOL = {
    "name": "Currency Converter",
    "description": "Convert an amount between currencies using live exchange rates",
    "category": "finance",
    "api_config": {"endpoint": "https://fx.example.com/convert", "method": "POST"},
    "parameters": [
        {"name": "amount", "type": "number", "required": True, "description": "Amount to convert",
         "validation": {"min": 0}},
        {"name": "to", "type": "string", "required": True, "description": "Target currency",
         "validation": {"enum": ["USD", "EUR"]}},
    ],
    "pricing": {"cost_in_wei": 2000000000000000},
    "metadata": {"tags": ["money"]},
}

OWNER = {"X-Caller-Id": "owner-1"}
CALLER = {"X-Caller-Id": "caller-7"}


@pytest.fixture
def client(store, embedder, fake_sleep):
    marketplace = Marketplace(store, embedder,
                              transport=FakeTransport(HttpResponse(status=200, data={"result": 9.1})),
                              sleep=fake_sleep)
    app.dependency_overrides[get_marketplace] = lambda: marketplace
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _register(client):
    response = client.post("/tools", json=TOOL, headers=OWNER)
    assert response.status_code == 201
    return response.json()["data"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_register_requires_caller_id(client):
    assert client.post("/tools", json=TOOL).status_code == 422


def test_register_and_fetch(client):
    tool = _register(client)

    assert tool["owner_id"] == "owner-1"
    assert tool["pricing"] == {"cost_in_wei": "2000000000000000", "eth_cost": "0.002"}

    response = client.get(f"/tools/{tool['tool_id']}")
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Currency Converter"


def test_register_invalid_tool(client):
    response = client.post("/tools", json={**TOOL, "name": ""}, headers=OWNER)
    assert response.status_code == 400
    assert response.json()["error_type"] == "ValidationFailed"


def test_unknown_tool_is_404(client):
    response = client.get("/tools/tool_missing")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "data": {"tool_id": "tool_missing"},
        "error": "Tool 'tool_missing' not found",
        "error_type": "NotFound",
    }


def test_search_and_browse(client):
    tool = _register(client)

    search = client.get("/tools/search", params={"q": "convert currencies", "max_cost_wei": "3000000000000000"})
    assert search.status_code == 200
    hits = search.json()["data"]
    assert hits[0]["tool"]["tool_id"] == tool["tool_id"]
    assert "similarity" in hits[0]

    assert client.get("/tools/search", params={"q": " "}).status_code == 400

    categories = client.get("/tools/categories").json()["data"]
    assert categories == [{"category": "finance", "count": 1, "avg_cost_in_wei": "2000000000000000"}]

    browse = client.get("/tools/category/finance").json()["data"]
    assert [t["tool_id"] for t in browse] == [tool["tool_id"]]

    mine = client.get("/tools/mine", headers=OWNER).json()["data"]
    assert [t["tool_id"] for t in mine] == [tool["tool_id"]]

    own_search = client.get("/tools/mine/search", params={"q": "exchange"}, headers=CALLER).json()["data"]
    assert own_search == []


def test_execute(client):
    tool = _register(client)

    response = client.post(f"/tools/{tool['tool_id']}/execute",
                           json={"parameters": {"amount": 10, "to": "EUR"}, "session_id": "s-9"},
                           headers=CALLER)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["data"] == {"result": 9.1}
    assert body["data"]["billing"]["cost_in_wei"] == "2000000000000000"
    assert body["data"]["usage_record_id"]

    popular = client.get("/tools/popular").json()["data"]
    assert popular[0]["usage_count"] == 1


def test_execute_with_invalid_parameters(client):
    tool = _register(client)

    response = client.post(f"/tools/{tool['tool_id']}/execute",
                           json={"parameters": {"amount": -1, "to": "GBP"}},
                           headers=CALLER)

    assert response.status_code == 400
    body = response.json()
    assert body["error_type"] == "ValidationFailed"
    assert body["data"]["validation_errors"] == [
        "Parameter 'amount' must be at least 0",
        "Parameter 'to' must be one of: USD, EUR",
    ]


def test_update_and_deactivate(client):
    tool = _register(client)

    forbidden = client.patch(f"/tools/{tool['tool_id']}", json={"name": "Mine now"}, headers=CALLER)
    assert forbidden.status_code == 404

    updated = client.patch(f"/tools/{tool['tool_id']}", json={"category": "fx"}, headers=OWNER)
    assert updated.status_code == 200
    assert updated.json()["data"]["category"] == "fx"

    assert client.delete(f"/tools/{tool['tool_id']}", headers=OWNER).json()["data"] is True

    executed = client.post(f"/tools/{tool['tool_id']}/execute", json={"parameters": {}}, headers=CALLER)
    assert executed.status_code == 409
    assert executed.json()["error_type"] == "ToolInactive"


def test_analytics_and_settlement(client):
    tool = _register(client)
    executed = client.post(f"/tools/{tool['tool_id']}/execute",
                           json={"parameters": {"amount": 1, "to": "USD"}}, headers=CALLER).json()
    record_id = executed["data"]["usage_record_id"]

    path = f"/tools/usage/{record_id}/settlement"
    assert client.post(path, json={"transaction_hash": "0x01"}).status_code == 422
    assert client.post(path, json={"transaction_hash": "0x01"}, headers=CALLER).status_code == 404

    settled = client.post(path, json={"transaction_hash": "0x01"}, headers=OWNER)
    assert settled.status_code == 200
    assert settled.json()["data"]["billing"]["paid"] is True

    revenue = client.get("/tools/analytics/revenue", headers=OWNER).json()["data"]
    assert revenue["total_revenue_wei"] == "2000000000000000"
    assert revenue["total_revenue_display"] == "2.000 mETH"

    summary = client.get("/tools/analytics/summary", params={"group_by": "month"}, headers=OWNER).json()["data"]
    assert summary["totals"]["paid_calls"] == 1

    performance = client.get("/tools/analytics/performance", headers=OWNER).json()["data"]
    assert performance["tools"][0]["health"] == "healthy"

    assert client.post("/tools/usage/usage_missing/settlement",
                       json={"transaction_hash": "0x01"}, headers=OWNER).status_code == 404
