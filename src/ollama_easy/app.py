"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and
configures the FastAPI application instance. The lifespan is the composition
root: it builds the Ollama client and the MCP connection manager once and
stores them in app.state for every request to share.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ollama_easy import __version__
from ollama_easy.config import OllamaEasySettings
from ollama_easy.ollama import OllamaClient
from ollama_easy.routers import chat, chats, health, mcp, system_prompts
from ollama_easy.tools import (
    ConnectionManager,
    ProviderConfigStore,
    ServerStatus,
    ToolProviderConnection,
)

logger = logging.getLogger(__name__)


def _log_initialized(status: ServerStatus) -> None:
    logger.info(
        f"MCP ready: {len(status.connected_servers)} providers connected, "
        f"{status.total_tools} tools"
    )


def _log_provider_disconnected(name: str) -> None:
    logger.warning(f"MCP provider {name} is no longer connected")


def build_connection_manager(settings: OllamaEasySettings) -> ConnectionManager:
    """Create the MCP connection manager described by the settings."""
    manager = ConnectionManager(
        config_store=ProviderConfigStore(settings.resolved_mcp_config_file),
        connection_factory=partial(
            ToolProviderConnection,
            connect_timeout=settings.mcp_connect_timeout,
            request_timeout=settings.mcp_request_timeout,
        ),
    )
    manager.subscribe("initialized", _log_initialized)
    manager.subscribe("provider_disconnected", _log_provider_disconnected)
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    Providers are not launched here; the connection manager initializes
    lazily on the first tool-enabled request or MCP endpoint call.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: OllamaEasySettings = app.state.settings
    app.state.ollama_client = OllamaClient(host=settings.ollama_host)
    app.state.connection_manager = build_connection_manager(settings)
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    connected = await app.state.ollama_client.check_connection()
    if connected:
        logger.info("Successfully connected to Ollama")
    else:
        logger.warning("Could not connect to Ollama - check if server is running")

    yield

    await app.state.connection_manager.disconnect()
    logger.info("MCP providers disconnected")

    await app.state.ollama_client.close()
    logger.info("Ollama client closed")


def create_app(settings: OllamaEasySettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional OllamaEasySettings instance. If not provided,
                  settings will be loaded from environment variables.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from ollama_easy.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="ollama-easy",
        description="Local chat server for Ollama with MCP tool calling",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings

    # FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(chats.router)
    app.include_router(mcp.router)
    app.include_router(system_prompts.router)

    return app
