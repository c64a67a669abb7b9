"""Configuration management for the MCP support agent.

Supports a YAML configuration file and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai", description="LLM provider: openai, azure_openai, mock")
    model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("LLM_MODEL", "OPENAI_MODEL"),
        description="Default model identifier",
    )
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LLM_API_KEY", "OPENAI_API_KEY"),
        description="API key",
    )
    api_base: Optional[str] = Field(default=None, description="API base URL")
    api_version: Optional[str] = Field(default="2024-02-15-preview", description="API version")
    deployment_name: Optional[str] = Field(default=None, description="Azure deployment name")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=4096, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class MCPClientSettings(BaseSettings):
    """Connection settings for the MCP server."""
    server_url: str = Field(default="http://localhost:3001/mcp", description="Streamable HTTP endpoint")
    client_name: str = Field(default="customer-support-chatbot")
    client_version: str = Field(default="1.0.0")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    connect_attempts: int = Field(default=3, ge=1)
    auth_token: Optional[str] = Field(default=None, description="Bearer token for the MCP server")

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )


class OrchestratorSettings(BaseSettings):
    """Orchestrator configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Tool-calling loop
    max_iterations: int = Field(default=5, gt=0)
    max_history: Optional[int] = Field(default=None, gt=0, description="Optional cap on caller-supplied turns per request")

    # System prompt knowledge section
    max_knowledge_resources: int = Field(default=3, ge=0)
    resource_excerpt_chars: int = Field(default=1000, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    mcp: MCPClientSettings = Field(default_factory=MCPClientSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file, or an empty mapping if it is missing."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("AGENT_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
