"""AI Gateway - Core orchestration logic.

The gateway coordinates:
- Capability discovery and the memoized orchestration context
- LLM interactions with function calling
- Tool execution via the MCP Client
- Termination with a final answer or a fallback
"""

import asyncio
import json
from typing import Any, Optional

from shared.logging import get_logger
from shared.models import (
    Capabilities,
    ConversationMessage,
    OrchestrationContext,
    OrchestrationOutcome,
    OrchestrationResult,
    ToolCall,
)
from shared.schema import to_function_schemas, to_openai_tools
from mcp_client.client import MCPClient
from mcp_client.discovery import discover_capabilities
from orchestrator.conversation import Conversation
from orchestrator.llm import LLMProvider
from orchestrator.prompts import DEFAULT_PREAMBLE, SystemPromptBuilder

logger = get_logger(__name__)


DEFAULT_MAX_ITERATIONS = 5

EMPTY_RESPONSE_MESSAGE = "I apologize, but I was unable to generate a response."

FALLBACK_MESSAGE = (
    "I apologize, but I encountered an issue processing your request. "
    "Please try rephrasing your question."
)


class AIGateway:
    """
    AI Gateway - Orchestrates LLM and MCP interactions.

    This is the central component that:
    1. Discovers server capabilities once and caches the derived context
    2. Supplies function schemas and the system prompt to the LLM
    3. Executes requested tool calls in order via the MCP Client
    4. Feeds results back until the LLM answers or the iteration limit hits

    The gateway keeps no conversation state between calls; only the
    orchestration context is memoized, and it is never rebuilt.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        mcp_client: MCPClient,
        system_prompt_preamble: Optional[str] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_knowledge_resources: int = 3,
        resource_excerpt_chars: int = 1000,
        max_history: Optional[int] = None,
        default_model: Optional[str] = None
    ) -> None:
        """
        Initialize AI Gateway.

        Args:
            llm_provider: LLM provider for completions
            mcp_client: MCP client owned by the caller
            system_prompt_preamble: Custom policy preamble
            max_iterations: Maximum LLM calls per request
            max_knowledge_resources: Resources read into the system prompt
            resource_excerpt_chars: Characters kept per resource
            max_history: Optional cap on caller-supplied turns per request
            default_model: Model used when a request names none
        """
        self.llm = llm_provider
        self.mcp_client = mcp_client
        self.max_iterations = max_iterations
        self.max_history = max_history
        self.default_model = default_model

        self.prompt_builder = SystemPromptBuilder(
            mcp_client,
            preamble=system_prompt_preamble or DEFAULT_PREAMBLE,
            max_resources=max_knowledge_resources,
            excerpt_chars=resource_excerpt_chars
        )

        self._context: Optional[OrchestrationContext] = None
        self._context_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()

    @property
    def context(self) -> Optional[OrchestrationContext]:
        """The memoized context, or None before the first initialize()."""
        return self._context

    async def ensure_connected(self) -> None:
        """Connect the MCP client if it is not connected yet."""
        if self.mcp_client.is_connected():
            return

        async with self._connect_lock:
            if not self.mcp_client.is_connected():
                await self.mcp_client.connect()

    async def initialize(self) -> OrchestrationContext:
        """
        Build the orchestration context once and return it.

        Concurrent first callers wait for a single build. A failed
        build is not cached, so the next call tries again.
        """
        if self._context is not None:
            return self._context

        async with self._context_lock:
            # Double-check after acquiring lock
            if self._context is not None:
                return self._context

            capabilities = await discover_capabilities(self.mcp_client)
            functions = to_function_schemas(capabilities.tools)
            system_prompt = await self.prompt_builder.build(capabilities.resources)

            self._context = OrchestrationContext(
                tools=capabilities.tools,
                resources=capabilities.resources,
                prompts=capabilities.prompts,
                functions=functions,
                system_prompt=system_prompt
            )

            logger.info(
                "Orchestration context built",
                tool_count=len(functions),
                resource_count=len(capabilities.resources),
                prompt_count=len(capabilities.prompts)
            )

        return self._context

    async def orchestrate(
        self,
        messages: list[ConversationMessage],
        model: Optional[str] = None
    ) -> OrchestrationResult:
        """
        Run the tool-calling loop for one conversation.

        Args:
            messages: Prior turns supplied by the caller, oldest first
            model: LLM model identifier

        Returns:
            Final message and the ordered names of the tools invoked

        Raises:
            MCPClientError: If context construction fails
            CompletionError: If an LLM call fails
        """
        context = await self.initialize()
        model = model or self.default_model
        tools = to_openai_tools(context.functions)
        tools_used: list[str] = []

        conversation = Conversation(
            context.system_prompt,
            messages,
            max_length=self.max_history
        )

        for iteration in range(1, self.max_iterations + 1):
            llm_response = await self.llm.complete(
                messages=conversation.messages(),
                tools=tools if tools else None,
                model=model,
                tool_choice="auto"
            )

            if not llm_response.tool_calls:
                return OrchestrationResult(
                    message=llm_response.content or EMPTY_RESPONSE_MESSAGE,
                    tools_used=tools_used,
                    outcome=OrchestrationOutcome.FINAL,
                    iterations=iteration
                )

            logger.debug(
                "LLM requested tool calls",
                count=len(llm_response.tool_calls),
                iteration=iteration
            )

            conversation.add_assistant_message(
                llm_response.content or "",
                tool_calls=llm_response.tool_calls
            )

            for tool_call in llm_response.tool_calls:
                if tool_call.type != "function" or tool_call.function is None:
                    continue

                tool_name = tool_call.function.name
                tools_used.append(tool_name)

                content = await self._execute_tool_call(tool_call)
                conversation.add_tool_result(tool_call.id, tool_name, content)

        logger.warning(
            "Max tool iterations reached",
            iterations=self.max_iterations,
            tools_used=tools_used
        )
        return OrchestrationResult(
            message=FALLBACK_MESSAGE,
            tools_used=tools_used,
            outcome=OrchestrationOutcome.FALLBACK,
            iterations=self.max_iterations
        )

    async def _execute_tool_call(self, tool_call: ToolCall) -> str:
        """
        Execute a single tool call and return the tool turn content.

        Any failure, including unparseable arguments, becomes an
        ``Error: ...`` message for the LLM instead of an exception.
        """
        tool_name = tool_call.function.name

        logger.info("Executing tool", tool=tool_name, tool_call_id=tool_call.id)

        try:
            arguments = self._parse_arguments(tool_call.function.arguments)
            logger.debug("Tool arguments", tool=tool_name, arguments=arguments)
            result = await self.mcp_client.call_tool(tool_name, arguments)
        except Exception as e:
            logger.warning("Tool execution failed", tool=tool_name, error=str(e))
            return f"Error: {e}"

        if result.is_error:
            logger.warning("Tool reported an error", tool=tool_name)
        else:
            logger.info("Tool executed", tool=tool_name, parts=len(result.content))

        return result.joined_text()

    @staticmethod
    def _parse_arguments(raw_arguments: str) -> dict[str, Any]:
        """Decode the JSON arguments the LLM produced."""
        try:
            arguments = json.loads(raw_arguments) if raw_arguments else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid tool call arguments: {e}") from e

        if not isinstance(arguments, dict):
            raise ValueError("Invalid tool call arguments: expected a JSON object")
        return arguments

    async def list_capabilities(self) -> Capabilities:
        """Discover the server's current capabilities, bypassing the cache."""
        return await discover_capabilities(self.mcp_client)

    async def health_check(self) -> dict[str, Any]:
        """Report connection status and the cached context summary."""
        status: dict[str, Any] = {
            "gateway": "healthy",
            "mcp_connected": self.mcp_client.is_connected(),
            "context_ready": self._context is not None,
            "tool_count": 0
        }

        if self._context is not None:
            status["tool_count"] = len(self._context.tools)

        return status

    async def close(self) -> None:
        """Disconnect the MCP client."""
        await self.mcp_client.disconnect()
