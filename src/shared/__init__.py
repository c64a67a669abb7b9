"""Shared models, configuration, and logging for the MCP support agent."""

from shared.models import (
    Capabilities,
    ConversationMessage,
    FunctionSchema,
    OrchestrationContext,
    OrchestrationResult,
    Tool,
    ToolCallResult,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "Capabilities",
    "ConversationMessage",
    "FunctionSchema",
    "OrchestrationContext",
    "OrchestrationResult",
    "Tool",
    "ToolCallResult",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
