"""Pydantic models for the MCP management endpoints."""

from typing import Any

from pydantic import Field

from ollama_easy.models.base import CamelModel


class ServerStatusResponse(CamelModel):
    """Snapshot of the MCP connection manager."""

    connected_servers: list[str] = Field(
        default_factory=list, description="Providers with a live connection"
    )
    total_tools: int = Field(default=0, description="Tools in the registry")
    is_initialized: bool = Field(
        default=False, description="Whether initialization has completed"
    )
    failed_servers: dict[str, str] = Field(
        default_factory=dict,
        description="Last connection error per provider",
    )


class ToolListResponse(CamelModel):
    """Response body for GET /api/v1/mcp/tools."""

    tools: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Tools in Ollama function-calling format",
    )
    count: int = Field(default=0, description="Number of tools")


class ServerInfoResponse(CamelModel):
    """A configured provider with its live connection flag."""

    name: str = Field(description="Provider name")
    description: str = Field(default="", description="Provider description")
    enabled: bool = Field(description="Whether the provider is enabled")
    connected: bool = Field(description="Whether the provider is connected")
    command: str = Field(description="Launch command")
    args: list[str] = Field(default_factory=list, description="Launch arguments")
    tool_count: int = Field(default=0, description="Tools discovered on the provider")
    error: str | None = Field(default=None, description="Last connection error")


class ServerListResponse(CamelModel):
    """Response body for GET /api/v1/mcp/servers."""

    servers: list[ServerInfoResponse] = Field(default_factory=list)
    status: ServerStatusResponse


class ExecuteToolRequest(CamelModel):
    """Request body for POST /api/v1/mcp/execute-tool."""

    tool_name: str = Field(min_length=1, description="Name of the tool to run")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Tool arguments"
    )


class ExecuteToolResponse(CamelModel):
    """Response body for POST /api/v1/mcp/execute-tool."""

    tool_name: str = Field(description="Name of the tool that ran")
    result: dict[str, Any] = Field(description="Structured tool result")


class ToggleServerRequest(CamelModel):
    """Request body for POST /api/v1/mcp/toggle-server."""

    server_name: str = Field(min_length=1, description="Provider to toggle")
    enabled: bool = Field(description="New enabled flag")


class DisconnectResponse(CamelModel):
    """Response body for DELETE /api/v1/mcp/disconnect."""

    message: str = Field(description="Result message")


class ReadResourceRequest(CamelModel):
    """Request body for POST /api/v1/mcp/read-resource."""

    server_name: str = Field(min_length=1, description="Provider that owns the resource")
    uri: str = Field(min_length=1, description="Resource URI")


class ReadResourceResponse(CamelModel):
    """Response body for POST /api/v1/mcp/read-resource."""

    server_name: str = Field(description="Provider that served the resource")
    uri: str = Field(description="Resource URI")
    result: dict[str, Any] = Field(description="Resource contents as returned by the provider")
