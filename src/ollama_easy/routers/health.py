"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from ollama_easy import __version__
from ollama_easy.models.health import HealthResponse
from ollama_easy.models.mcp import ServerStatusResponse
from ollama_easy.ollama import OllamaClient
from ollama_easy.tools import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of the server, Ollama
    connectivity, and a snapshot of the MCP providers. The MCP snapshot never
    triggers or waits on provider initialization.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    ollama_connected = None
    ollama_host = None
    mcp_status = None

    if hasattr(request.app.state, "ollama_client"):
        ollama_client: OllamaClient = request.app.state.ollama_client
        ollama_host = ollama_client.host

        try:
            ollama_connected = await ollama_client.check_connection()
            logger.debug(f"Ollama connectivity check: {ollama_connected}")
        except Exception as e:
            logger.warning(f"Ollama connectivity check failed: {e}")
            ollama_connected = False

    if hasattr(request.app.state, "connection_manager"):
        manager: ConnectionManager = request.app.state.connection_manager
        mcp_status = ServerStatusResponse.model_validate(manager.get_server_status())

    return HealthResponse(
        status="ok",
        version=__version__,
        ollama_connected=ollama_connected,
        ollama_host=ollama_host,
        mcp=mcp_status,
    )
