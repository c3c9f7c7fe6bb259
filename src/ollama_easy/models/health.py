"""Health check response model."""

from pydantic import Field

from ollama_easy.models.base import CamelModel
from ollama_easy.models.mcp import ServerStatusResponse


class HealthResponse(CamelModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of ollama-easy.
        ollama_connected: Whether the Ollama server answered.
        ollama_host: The Ollama host URL.
        mcp: Snapshot of the MCP connection manager.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of ollama-easy")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether Ollama is reachable",
    )
    ollama_host: str | None = Field(
        default=None,
        description="Ollama host URL",
    )
    mcp: ServerStatusResponse | None = Field(
        default=None,
        description="MCP provider status",
    )
