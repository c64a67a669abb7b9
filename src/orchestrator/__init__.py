"""Orchestrator / AI Gateway.

Builds the orchestration context from MCP discovery, drives the
LLM tool-calling loop, and serves the chat API.
"""

from orchestrator.llm import CompletionError, LLMProvider, create_llm_provider
from orchestrator.conversation import Conversation
from orchestrator.prompts import SystemPromptBuilder
from orchestrator.gateway import AIGateway

__all__ = [
    "LLMProvider",
    "CompletionError",
    "create_llm_provider",
    "Conversation",
    "SystemPromptBuilder",
    "AIGateway",
]
