"""Conversion of MCP tool schemas into OpenAI function schemas."""

from typing import Any

from shared.models import FunctionParameters, FunctionSchema, Tool


def to_function_schema(tool: Tool) -> FunctionSchema:
    """
    Convert a single MCP tool into an OpenAI function schema.

    The tool's input schema is trusted as-is; only ``properties`` and
    ``required`` are carried over, with empty defaults when missing.

    Args:
        tool: Tool descriptor as discovered from the MCP server

    Returns:
        Function schema usable for LLM function calling
    """
    schema = tool.input_schema
    return FunctionSchema(
        name=tool.name,
        description=tool.description or f"Execute {tool.name}",
        parameters=FunctionParameters(
            type="object",
            properties=schema.properties or {},
            required=schema.required or [],
        ),
    )


def to_function_schemas(tools: list[Tool]) -> list[FunctionSchema]:
    """Convert tools to function schemas, preserving discovery order."""
    return [to_function_schema(tool) for tool in tools]


def to_openai_tools(functions: list[FunctionSchema]) -> list[dict[str, Any]]:
    """Wrap function schemas in the ``tools`` format of the chat API."""
    return [
        {"type": "function", "function": function.model_dump()}
        for function in functions
    ]
