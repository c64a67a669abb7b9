"""Capability discovery for the MCP Client.

Lists tools, resources and prompts concurrently and joins them into a
single snapshot.
"""

import asyncio

from shared.logging import get_logger
from shared.models import Capabilities
from mcp_client.client import MCPClient

logger = get_logger(__name__)


async def discover_capabilities(client: MCPClient) -> Capabilities:
    """
    Discover everything the server advertises.

    The three list requests are independent and issued concurrently.
    The first failure propagates.

    Args:
        client: Connected MCP client

    Returns:
        Snapshot of tools, resources and prompts in discovery order
    """
    tools, resources, prompts = await asyncio.gather(
        client.list_tools(),
        client.list_resources(),
        client.list_prompts(),
    )

    logger.info(
        "Capabilities discovered",
        tool_count=len(tools),
        resource_count=len(resources),
        prompt_count=len(prompts)
    )

    return Capabilities(tools=tools, resources=resources, prompts=prompts)
