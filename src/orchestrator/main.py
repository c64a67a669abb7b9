"""Orchestrator - FastAPI Application.

The Orchestrator (AI Gateway) provides:
- Chat API for the support frontend
- Capability listing proxied from the MCP server
- Health reporting
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.config import Settings, get_settings
from shared.logging import bind_context, clear_context, get_logger, setup_logging
from shared.models import ConversationMessage, Prompt, Resource, Tool
from mcp_client.client import MCPClient, MCPClientError, MCPConnectionError
from orchestrator.gateway import AIGateway
from orchestrator.llm import create_llm_provider

logger = get_logger(__name__)


# Request/Response Models
class ChatTurn(BaseModel):
    """A prior conversation turn sent by the frontend."""
    role: str = Field(..., pattern="^(system|user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    """Chat request from frontend."""
    messages: list[ChatTurn] = Field(default_factory=list, description="Conversation so far")


class ChatResponse(BaseModel):
    """Chat response to frontend."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    tools_used: list[str] = Field(default_factory=list, alias="toolsUsed")


class CapabilitiesResponse(BaseModel):
    """Everything the MCP server advertises."""
    tools: list[Tool]
    resources: list[Resource]
    prompts: list[Prompt]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    mcp_connected: bool
    context_ready: bool
    tool_count: int


def build_gateway(settings: Settings) -> AIGateway:
    """Create a gateway and its MCP client from settings."""
    mcp_client = MCPClient(
        server_url=settings.mcp.server_url,
        timeout=settings.mcp.timeout,
        auth_token=settings.mcp.auth_token,
        client_name=settings.mcp.client_name,
        client_version=settings.mcp.client_version,
        connect_attempts=settings.mcp.connect_attempts
    )

    return AIGateway(
        llm_provider=create_llm_provider(settings.llm),
        mcp_client=mcp_client,
        max_iterations=settings.orchestrator.max_iterations,
        max_knowledge_resources=settings.orchestrator.max_knowledge_resources,
        resource_excerpt_chars=settings.orchestrator.resource_excerpt_chars,
        max_history=settings.orchestrator.max_history,
        default_model=settings.llm.model
    )


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[AIGateway] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    The lifespan owns the gateway: it is built from settings (unless one
    is injected), connected at startup and disconnected at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        app_settings = settings or get_settings()
        setup_logging(app_settings.log_level, json_output=app_settings.environment == "production")

        logger.info("Starting Orchestrator")

        app.state.gateway = gateway if gateway is not None else build_gateway(app_settings)

        try:
            await app.state.gateway.ensure_connected()
        except MCPConnectionError as e:
            # Requests retry the connection
            logger.warning("MCP server unavailable at startup", error=str(e))

        logger.info("Orchestrator started", mcp_server=app_settings.mcp.server_url)

        yield

        logger.info("Shutting down Orchestrator")
        try:
            await app.state.gateway.close()
        except MCPClientError as e:
            logger.error("MCP disconnect failed", error=str(e))

    app = FastAPI(
        title="MCP Support Agent",
        description="Customer support chat backed by an MCP server",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Report malformed request bodies as 400."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request: messages must be a list of {role, content} objects"}
        )

    app.get("/health", response_model=HealthResponse, tags=["System"])(health_check)
    app.post("/chat", response_model=ChatResponse, tags=["Chat"])(chat)
    app.get("/tools", response_model=CapabilitiesResponse, tags=["Tools"])(list_tools)

    return app


def get_gateway(request: Request) -> AIGateway:
    """Dependency returning the gateway owned by the application."""
    gateway: Optional[AIGateway] = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Gateway not initialized"
        )
    return gateway


async def health_check(gateway: AIGateway = Depends(get_gateway)) -> HealthResponse:
    """Health check endpoint."""
    status_info: dict[str, Any] = await gateway.health_check()

    return HealthResponse(
        status="healthy" if status_info["mcp_connected"] else "degraded",
        mcp_connected=status_info["mcp_connected"],
        context_ready=status_info["context_ready"],
        tool_count=status_info["tool_count"]
    )


async def chat(
    request: ChatRequest,
    gateway: AIGateway = Depends(get_gateway)
) -> ChatResponse:
    """
    Process a chat request.

    The caller sends the whole conversation each time; the reply
    carries the assistant message and the tools used to produce it.
    """
    if not request.messages:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Messages array is required"
        )

    bind_context(request_id=str(uuid.uuid4()), message_count=len(request.messages))
    try:
        await gateway.ensure_connected()
        result = await gateway.orchestrate(
            [ConversationMessage(role=m.role, content=m.content) for m in request.messages]
        )

        return ChatResponse(message=result.message, tools_used=result.tools_used)

    except Exception as e:
        logger.error("Chat processing failed", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or "Internal server error"
        )
    finally:
        clear_context()


async def list_tools(gateway: AIGateway = Depends(get_gateway)) -> CapabilitiesResponse:
    """List the MCP server's tools, resources and prompts."""
    try:
        await gateway.ensure_connected()
        capabilities = await gateway.list_capabilities()
    except MCPClientError as e:
        logger.error("Failed to list capabilities", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to retrieve capabilities from MCP server: {e}"
        )

    return CapabilitiesResponse(
        tools=capabilities.tools,
        resources=capabilities.resources,
        prompts=capabilities.prompts
    )


app = create_app()


def main():
    """Run the Orchestrator server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.orchestrator.host,
        port=settings.orchestrator.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
