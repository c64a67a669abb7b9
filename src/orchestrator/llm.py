"""LLM Integration Layer using LlamaIndex.

Supports multiple LLM providers via LlamaIndex-compatible packages:
- OpenAI
- Azure OpenAI

The LLM has no direct MCP access; it only sees function schemas and
returns tool call requests for the orchestrator to execute.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from shared.config import LLMSettings
from shared.logging import get_logger
from shared.models import ConversationMessage, LLMResponse, ToolCall

logger = get_logger(__name__)


class CompletionError(Exception):
    """The LLM completion call failed."""
    pass


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    LLM Integration Rules:
    - LLM receives only the discovered tools and the conversation
    - LLM outputs either structured tool calls or a final user response
    - Failures are raised as CompletionError and never retried here
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None,
        model: Optional[str] = None,
        tool_choice: str = "auto"
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Full conversation, system turn first
            tools: Available tools in OpenAI function format
            model: Model identifier; the configured default when omitted
            tool_choice: Tool selection policy passed to the API

        Returns:
            LLM response with content and/or tool calls

        Raises:
            CompletionError: If the completion call fails
        """
        pass


def _convert_messages(messages: list[ConversationMessage]) -> list:
    """Convert internal messages to LlamaIndex chat messages."""
    from llama_index.core.llms import ChatMessage, MessageRole

    role_map = {
        "user": MessageRole.USER,
        "assistant": MessageRole.ASSISTANT,
        "system": MessageRole.SYSTEM,
        "tool": MessageRole.TOOL,
    }

    result = []
    for msg in messages:
        additional_kwargs: dict[str, Any] = {}
        if msg.tool_calls:
            additional_kwargs["tool_calls"] = [
                tc.model_dump(exclude_none=True) for tc in msg.tool_calls
            ]
        if msg.tool_call_id:
            additional_kwargs["tool_call_id"] = msg.tool_call_id
        if msg.name and msg.role == "tool":
            additional_kwargs["name"] = msg.name

        result.append(ChatMessage(
            role=role_map.get(msg.role, MessageRole.USER),
            content=msg.content,
            additional_kwargs=additional_kwargs,
        ))

    return result


def _extract_tool_calls(raw_tool_calls: Any) -> Optional[list[ToolCall]]:
    """Normalize OpenAI tool call objects (or dicts) into ToolCall models."""
    if not raw_tool_calls:
        return None

    tool_calls = []
    for raw in raw_tool_calls:
        data = raw if isinstance(raw, dict) else raw.model_dump()
        tool_calls.append(ToolCall.model_validate(data))
    return tool_calls


class _LlamaIndexProvider(LLMProvider):
    """Shared completion logic for LlamaIndex OpenAI-compatible LLMs."""

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings
        self._llms: dict[str, Any] = {}

    @abstractmethod
    def _create_llm(self, model: str) -> Any:
        """Create the LlamaIndex LLM for a model identifier."""
        pass

    def _get_llm(self, model: Optional[str]) -> Any:
        """Lazily create one LlamaIndex LLM per model identifier."""
        model = model or self.settings.model
        if model not in self._llms:
            self._llms[model] = self._create_llm(model)
        return self._llms[model]

    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None,
        model: Optional[str] = None,
        tool_choice: str = "auto"
    ) -> LLMResponse:
        """Generate a completion, passing tools through to the chat API."""
        chat_messages = _convert_messages(messages)

        try:
            llm = self._get_llm(model)
            if tools:
                response = await llm.achat(
                    chat_messages,
                    tools=tools,
                    tool_choice=tool_choice
                )
            else:
                response = await llm.achat(chat_messages)
        except Exception as e:
            logger.error("LLM completion failed", model=model or self.settings.model, error=str(e))
            raise CompletionError(f"LLM completion failed: {e}") from e

        message = response.message
        tool_calls = _extract_tool_calls(message.additional_kwargs.get("tool_calls"))

        usage: dict[str, int] = {}
        raw_usage = getattr(response.raw, "usage", None) if response.raw is not None else None
        if raw_usage is not None:
            usage = {
                "prompt_tokens": getattr(raw_usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(raw_usage, "completion_tokens", 0) or 0,
            }

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason="tool_calls" if tool_calls else "stop",
            usage=usage
        )


class OpenAIProvider(_LlamaIndexProvider):
    """OpenAI LLM provider using LlamaIndex."""

    def _create_llm(self, model: str) -> Any:
        from llama_index.llms.openai import OpenAI

        return OpenAI(
            model=model,
            api_key=self.settings.api_key,
            api_base=self.settings.api_base,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class AzureOpenAIProvider(_LlamaIndexProvider):
    """Azure OpenAI LLM provider using LlamaIndex."""

    def _create_llm(self, model: str) -> Any:
        from llama_index.llms.azure_openai import AzureOpenAI

        return AzureOpenAI(
            model=model,
            engine=self.settings.deployment_name or model,
            api_key=self.settings.api_key,
            azure_endpoint=self.settings.api_base,
            api_version=self.settings.api_version,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing without API calls."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        responses: Optional[list[LLMResponse]] = None
    ) -> None:
        self.settings = settings
        self.call_history: list[dict[str, Any]] = []
        self._responses: list[LLMResponse] = list(responses or [])

    def set_next_response(self, response: LLMResponse) -> None:
        """Queue a response to return."""
        self._responses.append(response)

    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None,
        model: Optional[str] = None,
        tool_choice: str = "auto"
    ) -> LLMResponse:
        """Return the next queued response, or a default one."""
        self.call_history.append({
            # snapshot, the orchestrator keeps appending to its list
            "messages": list(messages),
            "tools": tools,
            "model": model,
            "tool_choice": tool_choice
        })

        if self._responses:
            return self._responses.pop(0)

        return LLMResponse(
            content="This is a mock response.",
            tool_calls=None,
            finish_reason="stop",
            usage={"prompt_tokens": 10, "completion_tokens": 5}
        )


def create_llm_provider(settings: LLMSettings) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Supports:
    - openai: OpenAI API
    - azure_openai: Azure OpenAI Service
    - mock: Mock provider for testing

    Args:
        settings: LLM configuration settings

    Returns:
        Configured LLM provider

    Raises:
        ValueError: If provider is not supported
    """
    providers = {
        "openai": OpenAIProvider,
        "azure_openai": AzureOpenAIProvider,
        "mock": MockLLMProvider,
    }

    provider_class = providers.get(settings.provider)
    if not provider_class:
        raise ValueError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating LLM provider", provider=settings.provider, model=settings.model)
    return provider_class(settings)
