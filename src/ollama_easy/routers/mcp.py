"""MCP provider management router.

This module provides REST API endpoints for:
- Inspecting provider status, servers and the tool registry
- Executing a tool directly and reading provider resources
- Reloading the provider configuration and toggling providers
- Disconnecting from every provider
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ollama_easy.dependencies import get_connection_manager
from ollama_easy.errors import (
    ProviderConnectionError,
    ToolExecutionError,
    UnknownToolError,
)
from ollama_easy.models.mcp import (
    DisconnectResponse,
    ExecuteToolRequest,
    ExecuteToolResponse,
    ReadResourceRequest,
    ReadResourceResponse,
    ServerInfoResponse,
    ServerListResponse,
    ServerStatusResponse,
    ToggleServerRequest,
    ToolListResponse,
)
from ollama_easy.tools import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])

Manager = Annotated[ConnectionManager, Depends(get_connection_manager)]


def _error(status_code: int, code: str, message: str, **details) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message, "details": details}},
    )


@router.get("/status", response_model=ServerStatusResponse, summary="MCP status")
async def get_status(manager: Manager) -> ServerStatusResponse:
    """Snapshot of connected providers and registered tools.

    Never launches providers or waits on a running initialization.
    """
    return ServerStatusResponse.model_validate(manager.get_server_status())


@router.get("/tools", response_model=ToolListResponse, summary="List tools")
async def list_tools(manager: Manager) -> ToolListResponse:
    """List every registered tool in Ollama function-calling format.

    Initializes the connection manager first if needed.
    """
    await manager.initialize()
    tools = manager.get_available_tools()
    return ToolListResponse(tools=tools, count=len(tools))


@router.get("/servers", response_model=ServerListResponse, summary="List providers")
async def list_servers(manager: Manager) -> ServerListResponse:
    """List every configured provider with its enabled and connected flags."""
    servers = [ServerInfoResponse.model_validate(s) for s in manager.get_servers()]
    return ServerListResponse(
        servers=servers,
        status=ServerStatusResponse.model_validate(manager.get_server_status()),
    )


@router.post(
    "/execute-tool", response_model=ExecuteToolResponse, summary="Execute a tool"
)
async def execute_tool(
    request: ExecuteToolRequest, manager: Manager
) -> ExecuteToolResponse:
    """Execute a tool on the provider that registered it.

    Raises:
        HTTPException: 404 if the tool is unknown, 502 if the tool call fails
    """
    logger.info(f"Executing tool {request.tool_name} via API")

    try:
        result = await manager.call_tool(request.tool_name, request.parameters)
    except UnknownToolError as e:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "tool_not_found",
            str(e),
            tool_name=request.tool_name,
            available=e.available,
        )
    except ToolExecutionError as e:
        logger.error(f"Tool {request.tool_name} failed: {e}")
        raise _error(
            status.HTTP_502_BAD_GATEWAY,
            "tool_execution_failed",
            str(e),
            tool_name=request.tool_name,
        )

    return ExecuteToolResponse(tool_name=request.tool_name, result=result)


@router.post(
    "/read-resource", response_model=ReadResourceResponse, summary="Read a resource"
)
async def read_resource(
    request: ReadResourceRequest, manager: Manager
) -> ReadResourceResponse:
    """Read a resource from a connected provider.

    Raises:
        HTTPException: 404 if the provider is not connected, 502 if the
            provider cannot serve the resource
    """
    try:
        result = await manager.read_resource(request.server_name, request.uri)
    except KeyError:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "server_not_connected",
            f"Server {request.server_name} is not connected",
            server_name=request.server_name,
        )
    except ProviderConnectionError as e:
        logger.error(f"Reading {request.uri} from {request.server_name} failed: {e}")
        raise _error(
            status.HTTP_502_BAD_GATEWAY,
            "resource_read_failed",
            str(e),
            server_name=request.server_name,
            uri=request.uri,
        )

    return ReadResourceResponse(
        server_name=request.server_name, uri=request.uri, result=result
    )


@router.post(
    "/reload-config", response_model=ServerStatusResponse, summary="Reload providers"
)
async def reload_config(manager: Manager) -> ServerStatusResponse:
    """Disconnect every provider and initialize again from the config file."""
    status_snapshot = await manager.reload_configuration()
    return ServerStatusResponse.model_validate(status_snapshot)


@router.post(
    "/toggle-server", response_model=ServerStatusResponse, summary="Toggle a provider"
)
async def toggle_server(
    request: ToggleServerRequest, manager: Manager
) -> ServerStatusResponse:
    """Persist a provider's enabled flag and reload the configuration.

    Raises:
        HTTPException: 404 if the config file or the provider doesn't exist
    """
    try:
        status_snapshot = await manager.set_server_enabled(
            request.server_name, request.enabled
        )
    except FileNotFoundError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "config_not_found", str(e))
    except KeyError:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "server_not_found",
            f"Server {request.server_name} is not configured",
            server_name=request.server_name,
        )

    logger.info(
        f"Server {request.server_name} {'enabled' if request.enabled else 'disabled'}"
    )
    return ServerStatusResponse.model_validate(status_snapshot)


@router.delete(
    "/disconnect", response_model=DisconnectResponse, summary="Disconnect providers"
)
async def disconnect(manager: Manager) -> DisconnectResponse:
    """Disconnect from every provider. The next tool use reconnects."""
    await manager.disconnect()
    return DisconnectResponse(message="Disconnected from all MCP servers")
