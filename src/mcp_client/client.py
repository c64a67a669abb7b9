"""MCP Client for capability discovery and invocation.

Wraps the official MCP SDK session over Streamable HTTP and exposes
typed discovery (tools, resources, prompts) and invocation operations.
The client owns its transport exclusively; callers only ever see the
models defined in ``shared.models``.
"""

import asyncio
from datetime import timedelta
from typing import Any, Optional

from mcp import ClientSession, types
from mcp.client.streamable_http import streamablehttp_client
from pydantic import AnyUrl
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from shared.logging import get_logger
from shared.models import (
    ContentPart,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    ResourceContent,
    Tool,
    ToolCallResult,
    ToolInputSchema,
)

logger = get_logger(__name__)


class MCPClientError(Exception):
    """Base exception for MCP Client errors."""
    pass


class MCPConnectionError(MCPClientError):
    """Connection or handshake with the MCP server failed."""
    pass


class NotConnectedError(MCPClientError):
    """An operation was attempted before connect() succeeded."""
    pass


class DisconnectError(MCPClientError):
    """Releasing the connection failed."""
    pass


class DiscoveryError(MCPClientError):
    """Listing tools, resources or prompts failed."""
    pass


class ToolCallError(MCPClientError):
    """A tool invocation failed at the transport or protocol level."""
    pass


class ResourceReadError(MCPClientError):
    """A resource could not be read."""
    pass


class PromptError(MCPClientError):
    """A prompt could not be rendered."""
    pass


def _to_content_part(block: Any) -> ContentPart:
    """Convert an SDK content block into a ContentPart."""
    return ContentPart.model_validate(block.model_dump(exclude_none=True))


class MCPClient:
    """
    Session with a single MCP server.

    The client is created unconnected. ``connect()`` opens the transport
    and performs the protocol handshake; every other operation except
    ``disconnect()`` and ``is_connected()`` requires a live connection
    and fails fast with ``NotConnectedError`` otherwise.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:3001/mcp",
        timeout: float = 30.0,
        auth_token: Optional[str] = None,
        client_name: str = "customer-support-chatbot",
        client_version: str = "1.0.0",
        connect_attempts: int = 3
    ) -> None:
        """
        Initialize MCP Client.

        Args:
            server_url: Streamable HTTP endpoint of the MCP server
            timeout: Request timeout in seconds
            auth_token: Optional bearer token sent to the server
            client_name: Name announced during the handshake
            client_version: Version announced during the handshake
            connect_attempts: Handshake attempts before giving up
        """
        self.server_url = server_url
        self.timeout = timeout
        self.client_name = client_name
        self.client_version = client_version
        self.connect_attempts = connect_attempts
        self._auth_token = auth_token

        self._owner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None
        self._session: Optional[ClientSession] = None
        self._connected = False

    @property
    def auth_token(self) -> Optional[str]:
        """Get current authentication token."""
        return self._auth_token

    @auth_token.setter
    def auth_token(self, token: Optional[str]) -> None:
        """Set authentication token. Takes effect on the next connect()."""
        self._auth_token = token

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including authentication."""
        headers: dict[str, str] = {}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    def is_connected(self) -> bool:
        """Return whether the session is currently connected."""
        return self._connected

    def _require_session(self) -> ClientSession:
        if not self._connected or self._session is None:
            raise NotConnectedError("Not connected to MCP server. Call connect() first.")
        return self._session

    async def __aenter__(self) -> "MCPClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """
        Open the transport and run the MCP handshake.

        The transport lives in a dedicated owner task, so the session
        can be closed from any task regardless of which one opened it.

        Raises:
            MCPConnectionError: If the server cannot be reached or the
                handshake fails after all attempts
        """
        if self._connected:
            return

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                reraise=True
            ):
                with attempt:
                    await self._start_session()
        except Exception as e:
            self._connected = False
            logger.error(
                "Failed to connect to MCP server",
                server_url=self.server_url,
                error=str(e)
            )
            raise MCPConnectionError(f"MCP connection failed: {e}") from e

        self._connected = True
        logger.info("Connected to MCP server", server_url=self.server_url)

    async def _start_session(self) -> None:
        """Start the owner task and wait until its session is initialized."""
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        closing = asyncio.Event()
        owner = asyncio.create_task(self._run_session(ready, closing))

        try:
            session = await ready
        except BaseException:
            # The owner already released the transport unless we were cancelled
            owner.cancel()
            raise

        self._owner = owner
        self._closing = closing
        self._session = session
        owner.add_done_callback(self._on_owner_done)

    def _on_owner_done(self, owner: asyncio.Task) -> None:
        if owner is not self._owner:
            return

        # The transport ended without disconnect(), so the next connect() starts over
        self._owner = None
        self._closing = None
        self._session = None
        self._connected = False

        error = None if owner.cancelled() else owner.exception()
        logger.warning(
            "MCP session closed unexpectedly",
            server_url=self.server_url,
            error=str(error) if error else None
        )

    async def _run_session(self, ready: asyncio.Future, closing: asyncio.Event) -> None:
        """
        Hold the transport and session open until ``closing`` is set.

        The SDK's anyio task groups must be exited by the task that
        entered them, so this task does both.
        """
        try:
            async with streamablehttp_client(
                self.server_url,
                headers=self._get_headers() or None,
                timeout=timedelta(seconds=self.timeout),
            ) as (read_stream, write_stream, _):
                async with ClientSession(
                    read_stream,
                    write_stream,
                    client_info=types.Implementation(
                        name=self.client_name,
                        version=self.client_version
                    ),
                ) as session:
                    await session.initialize()
                    ready.set_result(session)
                    await closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
                return
            raise

    async def disconnect(self) -> None:
        """
        Close the session and transport.

        Safe to call when not connected.

        Raises:
            DisconnectError: If closing the underlying transport fails
        """
        owner = self._owner
        closing = self._closing
        self._owner = None
        self._closing = None
        self._session = None
        self._connected = False

        if owner is None:
            return

        closing.set()
        try:
            await owner
        except Exception as e:
            logger.error("Error disconnecting from MCP server", error=str(e))
            raise DisconnectError(f"Disconnect failed: {e}") from e

        logger.info("Disconnected from MCP server", server_url=self.server_url)

    async def list_tools(self) -> list[Tool]:
        """
        List tools advertised by the server.

        Raises:
            NotConnectedError: If not connected
            DiscoveryError: If the request fails
        """
        session = self._require_session()
        try:
            response = await session.list_tools()
        except Exception as e:
            logger.error("Error listing tools", error=str(e))
            raise DiscoveryError(f"Failed to list tools: {e}") from e

        return [
            Tool(
                name=tool.name,
                description=tool.description,
                input_schema=ToolInputSchema.model_validate(tool.inputSchema or {}),
            )
            for tool in response.tools
        ]

    async def list_resources(self) -> list[Resource]:
        """
        List resources advertised by the server.

        Raises:
            NotConnectedError: If not connected
            DiscoveryError: If the request fails
        """
        session = self._require_session()
        try:
            response = await session.list_resources()
        except Exception as e:
            logger.error("Error listing resources", error=str(e))
            raise DiscoveryError(f"Failed to list resources: {e}") from e

        return [
            Resource(
                uri=str(resource.uri),
                name=resource.name,
                description=resource.description,
                mime_type=resource.mimeType,
            )
            for resource in response.resources
        ]

    async def list_prompts(self) -> list[Prompt]:
        """
        List prompt templates advertised by the server.

        Raises:
            NotConnectedError: If not connected
            DiscoveryError: If the request fails
        """
        session = self._require_session()
        try:
            response = await session.list_prompts()
        except Exception as e:
            logger.error("Error listing prompts", error=str(e))
            raise DiscoveryError(f"Failed to list prompts: {e}") from e

        prompts = []
        for prompt in response.prompts:
            arguments = None
            if prompt.arguments is not None:
                arguments = [
                    PromptArgument(
                        name=arg.name,
                        description=arg.description,
                        required=bool(arg.required),
                    )
                    for arg in prompt.arguments
                ]
            prompts.append(Prompt(
                name=prompt.name,
                description=prompt.description,
                arguments=arguments,
            ))
        return prompts

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> ToolCallResult:
        """
        Invoke a tool on the server.

        A result with ``is_error=True`` means the server handled the call
        and reported an application error; it is returned, not raised.

        Args:
            tool_name: Name of the tool to invoke
            arguments: Tool arguments

        Returns:
            Tool invocation result

        Raises:
            NotConnectedError: If not connected
            ToolCallError: If the call fails at the transport or protocol level
        """
        session = self._require_session()

        logger.debug("Calling tool", tool=tool_name)

        try:
            response = await session.call_tool(tool_name, arguments=arguments or {})
        except Exception as e:
            logger.error("Error calling tool", tool=tool_name, error=str(e))
            raise ToolCallError(f"Tool call failed: {e}") from e

        return ToolCallResult(
            content=[_to_content_part(block) for block in response.content or []],
            is_error=response.isError is True,
        )

    async def read_resource(self, uri: str) -> ResourceContent:
        """
        Read a resource and return its first content block.

        Raises:
            NotConnectedError: If not connected
            ResourceReadError: If the resource is unknown, empty, or the read fails
        """
        session = self._require_session()
        try:
            response = await session.read_resource(AnyUrl(uri))
        except Exception as e:
            logger.error("Error reading resource", uri=uri, error=str(e))
            raise ResourceReadError(f"Resource read failed: {e}") from e

        if not response.contents:
            raise ResourceReadError(f"Resource read failed: no content for {uri}")

        content = response.contents[0]
        return ResourceContent(
            uri=str(content.uri),
            mime_type=content.mimeType,
            text=getattr(content, "text", None),
            blob=getattr(content, "blob", None),
        )

    async def get_prompt(
        self,
        prompt_name: str,
        arguments: Optional[dict[str, str]] = None
    ) -> list[PromptMessage]:
        """
        Render a prompt template into role-tagged messages.

        Raises:
            NotConnectedError: If not connected
            PromptError: If the prompt is unknown or the arguments are rejected
        """
        session = self._require_session()
        try:
            response = await session.get_prompt(prompt_name, arguments=arguments)
        except Exception as e:
            logger.error("Error getting prompt", prompt=prompt_name, error=str(e))
            raise PromptError(f"Prompt retrieval failed: {e}") from e

        return [
            PromptMessage(role=message.role, content=_to_content_part(message.content))
            for message in response.messages
        ]
