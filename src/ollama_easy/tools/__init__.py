"""MCP tool providers: connections, configuration, and the tool registry.

This package launches MCP provider subprocesses, discovers their tools,
converts them to Ollama-compatible schemas, and routes tool calls during chat.
"""

from ollama_easy.tools.connection import ToolProviderConnection
from ollama_easy.tools.manager import ConnectionManager
from ollama_easy.tools.provider_config import ProviderConfigStore
from ollama_easy.tools.types import (
    ConnectionState,
    ProviderCapabilities,
    ProviderConfig,
    RegisteredTool,
    ServerInfo,
    ServerStatus,
    ToolDescriptor,
)

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderConfigStore",
    "RegisteredTool",
    "ServerInfo",
    "ServerStatus",
    "ToolDescriptor",
    "ToolProviderConnection",
]
