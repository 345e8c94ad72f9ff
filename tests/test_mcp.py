"""
Tests for the InspectDx MCP server (inspectdx.mcp.server).

Skipped when the optional ``mcp`` extra (fastmcp) is not installed.
"""

import json

import pytest

pytest.importorskip("fastmcp")

from fastmcp import Client  # noqa: E402

from inspectdx.mcp.server import create_server  # noqa: E402


def _text(result) -> str:
    content = getattr(result, "content", result)
    return content[0].text


@pytest.fixture
def server(seeded_client):
    return create_server(seeded_client.config, client=seeded_client)


class TestServerConstruction:
    def test_server_name(self, server):
        assert server.name == "InspectDx"


class TestTools:
    """Tools invoked through an in-memory MCP client."""

    @pytest.mark.asyncio
    async def test_classify_defect(self, server):
        async with Client(server) as mcp_client:
            result = await mcp_client.call_tool(
                "classify_defect", {"description": "Kettenglied gerissen", "checkpoint_number": 5},
            )
        data = json.loads(_text(result))
        assert data["priority"] == "high"

    @pytest.mark.asyncio
    async def test_run_diagnosis(self, server):
        async with Client(server) as mcp_client:
            result = await mcp_client.call_tool(
                "run_diagnosis", {"symptom_description": "Motor überhitzt beim Starten, Öldruck schwankt"},
            )
        data = json.loads(_text(result))
        assert data["root_cause"]["component_id"] == "mtu_mb873"

    @pytest.mark.asyncio
    async def test_query_inspection_error_is_json(self, server):
        async with Client(server) as mcp_client:
            result = await mcp_client.call_tool(
                "query_inspection", {"query": "Öldruck", "priority": "urgent"},
            )
        data = json.loads(_text(result))
        assert "error" in data
        assert data["results"] == []

    @pytest.mark.asyncio
    async def test_health(self, server):
        async with Client(server) as mcp_client:
            result = await mcp_client.call_tool("health", {})
        assert json.loads(_text(result))["status"] == "ok"
