"""Dependency injection providers for FastAPI endpoints.

Long-lived objects (the Ollama client and the MCP connection manager) are
created by the application lifespan and read from app.state. Cheap
file-backed services are built per request from the app's settings so tests
can run with isolated settings.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from ollama_easy.chat import StreamingChatOrchestrator
from ollama_easy.chats import AttachmentProcessor, ChatStorage
from ollama_easy.config import OllamaEasySettings
from ollama_easy.ollama import OllamaClient
from ollama_easy.services import SystemPromptService
from ollama_easy.tools import ConnectionManager


@lru_cache
def get_settings() -> OllamaEasySettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the OLLAMA_EASY_ prefix.

    Returns:
        OllamaEasySettings: The application configuration settings.
    """
    return OllamaEasySettings()


def _not_initialized(component: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "error": {
                "code": "service_unavailable",
                "message": f"{component} not initialized",
                "details": {},
            }
        },
    )


def get_ollama_client(request: Request) -> OllamaClient:
    """Get the Ollama client from app state.

    Raises:
        HTTPException: If the Ollama client is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "ollama_client"):
        raise _not_initialized("Ollama client")
    return request.app.state.ollama_client


def get_connection_manager(request: Request) -> ConnectionManager:
    """Get the MCP connection manager from app state.

    Raises:
        HTTPException: If the manager is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "connection_manager"):
        raise _not_initialized("MCP connection manager")
    return request.app.state.connection_manager


def get_chat_storage(request: Request) -> ChatStorage:
    """Get a ChatStorage for the configured conversations directory."""
    settings: OllamaEasySettings = request.app.state.settings
    return ChatStorage(conversations_dir=settings.resolved_conversations_dir)


def get_system_prompt_service(request: Request) -> SystemPromptService:
    """Get a SystemPromptService for the configured prompts file."""
    settings: OllamaEasySettings = request.app.state.settings
    return SystemPromptService(prompts_file=settings.resolved_system_prompts_file)


def get_orchestrator(request: Request) -> StreamingChatOrchestrator:
    """Assemble the chat orchestrator with its collaborators.

    Raises:
        HTTPException: If the lifespan objects are missing (503 Service Unavailable).
    """
    settings: OllamaEasySettings = request.app.state.settings
    storage = get_chat_storage(request)

    return StreamingChatOrchestrator(
        ollama_client=get_ollama_client(request),
        connection_manager=get_connection_manager(request),
        storage=storage,
        attachment_processor=AttachmentProcessor(storage),
        system_prompts=get_system_prompt_service(request),
        max_tool_iterations=settings.max_tool_iterations,
    )
