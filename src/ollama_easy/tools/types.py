"""Data types for MCP tool providers.

This module defines provider configuration, connection state, and the
descriptors that make up the flat tool registry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConnectionState(str, Enum):
    """Lifecycle state of a single provider connection."""

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class ProviderConfig:
    """Launch configuration for one MCP tool provider.

    Attributes:
        name: Provider identifier (key in the mcpServers mapping)
        command: Executable to launch
        args: Command-line arguments
        env: Environment overrides merged over the server's environment
        enabled: Whether the provider should be connected on initialize
        description: Free-text description shown in the UI
    """

    name: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    enabled: bool = True
    description: str = ""


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool discovered on a provider.

    The input schema is passed through to Ollama untouched.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    provider: str

    def to_ollama_tool(self) -> dict[str, Any]:
        """Format the descriptor for Ollama's function-calling contract."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema
                or {"type": "object", "properties": {}},
            },
        }


@dataclass
class ProviderCapabilities:
    """Everything a provider exposed during discovery."""

    tools: list[ToolDescriptor] = field(default_factory=list)
    resources: list[dict[str, Any]] = field(default_factory=list)
    prompts: list[dict[str, Any]] = field(default_factory=list)
    resources_supported: bool = False
    prompts_supported: bool = False


@dataclass(frozen=True)
class RegisteredTool:
    """Registry entry: which provider owns a tool name."""

    provider: str
    descriptor: ToolDescriptor


@dataclass
class ServerStatus:
    """Snapshot of the connection manager state."""

    connected_servers: list[str]
    total_tools: int
    is_initialized: bool
    failed_servers: dict[str, str] = field(default_factory=dict)


@dataclass
class ServerInfo:
    """A configured provider together with its live connection flag."""

    name: str
    description: str
    enabled: bool
    connected: bool
    command: str
    args: list[str]
    tool_count: int = 0
    error: str | None = None
