"""MCP Client - capability discovery and invocation.

The MCP Client owns the connection to an MCP server, discovers its
tools, resources and prompts, and invokes them with typed results.
"""

from mcp_client.client import (
    DiscoveryError,
    DisconnectError,
    MCPClient,
    MCPClientError,
    MCPConnectionError,
    NotConnectedError,
    PromptError,
    ResourceReadError,
    ToolCallError,
)
from mcp_client.discovery import discover_capabilities

__all__ = [
    "MCPClient",
    "MCPClientError",
    "MCPConnectionError",
    "NotConnectedError",
    "DisconnectError",
    "DiscoveryError",
    "ToolCallError",
    "ResourceReadError",
    "PromptError",
    "discover_capabilities",
]
