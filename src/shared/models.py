"""Core data models for the MCP support agent.

This module defines the shared data structures that flow between the
MCP client, the schema adapter, and the orchestrator, ensuring type
safety and validation throughout the system.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolInputSchema(BaseModel):
    """
    JSON Schema describing the arguments a tool accepts.

    Treated as an opaque document: unknown keys are preserved so the
    schema survives a round trip unchanged.
    """
    model_config = ConfigDict(extra="allow")

    type: str = "object"
    properties: Optional[dict[str, Any]] = None
    required: Optional[list[str]] = None


class Tool(BaseModel):
    """A callable capability advertised by the MCP server."""
    name: str = Field(..., description="Tool name, unique within a session")
    description: Optional[str] = None
    input_schema: ToolInputSchema = Field(default_factory=ToolInputSchema)


class Resource(BaseModel):
    """Addressable server-side content, readable on demand."""
    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = None


class ResourceContent(BaseModel):
    """Content of a single resource read."""
    uri: str
    mime_type: Optional[str] = None
    text: Optional[str] = None
    blob: Optional[str] = None


class PromptArgument(BaseModel):
    """Named argument of a prompt template."""
    name: str
    description: Optional[str] = None
    required: bool = False


class Prompt(BaseModel):
    """A named, parameterized prompt template."""
    name: str
    description: Optional[str] = None
    arguments: Optional[list[PromptArgument]] = None


class ContentPart(BaseModel):
    """
    One block of content returned by the server.

    Non-text blocks (images, embedded resources) keep their extra
    fields so they can be serialized back to text for the LLM.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None

    def as_text(self) -> str:
        """Return the text of this part, or its JSON form for non-text parts."""
        if self.text:
            return self.text
        return self.model_dump_json(exclude_none=True)


class PromptMessage(BaseModel):
    """A role-tagged message rendered from a prompt template."""
    role: str
    content: ContentPart


class ToolCallResult(BaseModel):
    """
    Result of a tool invocation.

    ``is_error`` is set when the server itself reported an application
    error (e.g. a business-rule rejection). Transport failures are raised
    as exceptions instead and never appear here.
    """
    content: list[ContentPart] = Field(default_factory=list)
    is_error: bool = False

    def joined_text(self) -> str:
        """Join all content parts into a single string."""
        return "\n".join(part.as_text() for part in self.content)


class Capabilities(BaseModel):
    """Snapshot of everything the server advertises."""
    tools: list[Tool] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    prompts: list[Prompt] = Field(default_factory=list)


class FunctionParameters(BaseModel):
    """Parameter block of an OpenAI function schema."""
    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class FunctionSchema(BaseModel):
    """OpenAI function-calling schema derived from an MCP tool."""
    name: str
    description: str
    parameters: FunctionParameters = Field(default_factory=FunctionParameters)


class OrchestrationContext(BaseModel):
    """
    Everything the orchestrator derives from discovery.

    Built once per orchestrator lifetime and reused for every
    conversation afterwards.
    """
    tools: list[Tool] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    prompts: list[Prompt] = Field(default_factory=list)
    functions: list[FunctionSchema] = Field(default_factory=list)
    system_prompt: str


class FunctionCall(BaseModel):
    """Function name and JSON-encoded arguments requested by the LLM."""
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A tool invocation requested by the LLM."""
    id: str
    type: str = "function"
    function: Optional[FunctionCall] = None


class ConversationMessage(BaseModel):
    """A single turn in a conversation."""
    role: str = Field(..., description="Message role: user, assistant, system, tool")
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None


class LLMResponse(BaseModel):
    """Response from the LLM layer."""
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    finish_reason: str = "stop"
    usage: dict[str, int] = Field(default_factory=dict)


class OrchestrationOutcome(str, Enum):
    """How an orchestration run terminated."""
    FINAL = "final"
    FALLBACK = "fallback"


class OrchestrationResult(BaseModel):
    """Final answer of one orchestration run."""
    message: str
    tools_used: list[str] = Field(default_factory=list)
    outcome: OrchestrationOutcome = OrchestrationOutcome.FINAL
    iterations: int = 0
