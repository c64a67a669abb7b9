"""Tests for the Orchestrator HTTP API."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from shared.config import Settings
from shared.models import (
    Capabilities,
    OrchestrationOutcome,
    OrchestrationResult,
    Prompt,
    Resource,
    Tool,
)
from mcp_client.client import DiscoveryError, MCPConnectionError
from orchestrator.gateway import AIGateway
from orchestrator.llm import CompletionError
from orchestrator.main import create_app


@pytest.fixture
def gateway():
    """Gateway stub injected into the application."""
    stub = MagicMock(spec=AIGateway)
    stub.ensure_connected = AsyncMock()
    stub.close = AsyncMock()
    stub.orchestrate = AsyncMock(return_value=OrchestrationResult(
        message="We have SKU123 for $19.99",
        tools_used=["search_products"],
        outcome=OrchestrationOutcome.FINAL,
        iterations=2
    ))
    stub.list_capabilities = AsyncMock(return_value=Capabilities(
        tools=[Tool(name="search_products", description="Find products")],
        resources=[Resource(uri="catalog://products/overview", name="Catalog")],
        prompts=[Prompt(name="greeting")]
    ))
    stub.health_check = AsyncMock(return_value={
        "gateway": "healthy",
        "mcp_connected": True,
        "context_ready": True,
        "tool_count": 1
    })
    return stub


@pytest.fixture
def client(gateway):
    app = create_app(settings=Settings(), gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_chat_returns_message_and_tools_used(self, client, gateway):
        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "find me a mouse"}]
        })

        assert response.status_code == 200
        assert response.json() == {
            "message": "We have SKU123 for $19.99",
            "toolsUsed": ["search_products"],
        }

        turns = gateway.orchestrate.await_args.args[0]
        assert [(t.role, t.content) for t in turns] == [("user", "find me a mouse")]

    def test_chat_reconnects_lazily(self, client, gateway):
        """Test that every request makes sure the MCP session is up."""
        gateway.ensure_connected.reset_mock()

        client.post("/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        gateway.ensure_connected.assert_awaited_once()

    def test_empty_messages_rejected(self, client, gateway):
        response = client.post("/chat", json={"messages": []})

        assert response.status_code == 400
        assert response.json()["detail"] == "Messages array is required"
        gateway.orchestrate.assert_not_called()

    def test_missing_messages_rejected(self, client):
        response = client.post("/chat", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "Messages array is required"

    @pytest.mark.parametrize("body", [
        {"messages": "hello"},
        {"messages": [{"role": "tool", "content": "x"}]},
        {"messages": [{"role": "user"}]},
    ])
    def test_malformed_body_rejected(self, client, body):
        response = client.post("/chat", json=body)

        assert response.status_code == 400
        assert "Invalid request" in response.json()["detail"]

    def test_orchestration_failure_returns_500(self, client, gateway):
        gateway.orchestrate.side_effect = CompletionError("LLM completion failed: upstream 503")

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "Hi"}]
        })

        assert response.status_code == 500
        assert response.json()["detail"] == "LLM completion failed: upstream 503"

    def test_connection_failure_returns_500(self, client, gateway):
        gateway.ensure_connected.side_effect = MCPConnectionError("MCP connection failed: refused")

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "Hi"}]
        })

        assert response.status_code == 500
        assert "refused" in response.json()["detail"]


class TestToolsEndpoint:
    """Tests for GET /tools."""

    def test_list_capabilities(self, client):
        response = client.get("/tools")

        assert response.status_code == 200
        data = response.json()
        assert [t["name"] for t in data["tools"]] == ["search_products"]
        assert data["resources"][0]["uri"] == "catalog://products/overview"
        assert data["prompts"][0]["name"] == "greeting"

    def test_discovery_failure_returns_502(self, client, gateway):
        gateway.list_capabilities.side_effect = DiscoveryError("Failed to list tools: timeout")

        response = client.get("/tools")

        assert response.status_code == 502
        assert "Failed to list tools" in response.json()["detail"]


class TestLifecycle:
    """Tests for health reporting and startup/shutdown."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "mcp_connected": True,
            "context_ready": True,
            "tool_count": 1,
        }

    def test_degraded_when_disconnected(self, client, gateway):
        gateway.health_check.return_value = {
            "gateway": "healthy",
            "mcp_connected": False,
            "context_ready": False,
            "tool_count": 0
        }

        response = client.get("/health")

        assert response.json()["status"] == "degraded"

    def test_startup_survives_unreachable_server(self, gateway):
        """Test that the app starts even if the first connect fails."""
        gateway.ensure_connected.side_effect = MCPConnectionError("MCP connection failed: refused")
        app = create_app(settings=Settings(), gateway=gateway)

        with TestClient(app) as test_client:
            assert test_client.get("/health").status_code == 200

        gateway.close.assert_awaited_once()
