"""ConnectionManager: the set of provider connections and the tool registry.

The manager is created once by the application lifespan and injected where
it is needed. It connects to every enabled provider concurrently, merges the
discovered tools into a flat name -> provider registry, and routes tool calls
to the provider that owns the tool.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from ollama_easy.errors import (
    ProviderConnectionError,
    ToolExecutionError,
    UnknownToolError,
)
from ollama_easy.tools.connection import ToolProviderConnection
from ollama_easy.tools.provider_config import ProviderConfigStore
from ollama_easy.tools.types import (
    ProviderCapabilities,
    ProviderConfig,
    RegisteredTool,
    ServerInfo,
    ServerStatus,
)

logger = logging.getLogger(__name__)

LIFECYCLE_EVENTS = (
    "initialized",
    "provider_connected",
    "provider_disconnected",
    "disconnected",
)

ConnectionFactory = Callable[[ProviderConfig], ToolProviderConnection]


class ConnectionManager:
    """Owns every ToolProviderConnection and the flat tool registry.

    initialize() is single-flight: callers arriving while an initialization
    is running await the same task instead of launching providers again.
    The registry is only rebuilt inside that task, so tool dispatch can read
    it without locking.
    """

    def __init__(
        self,
        config_store: ProviderConfigStore,
        connection_factory: ConnectionFactory | None = None,
    ):
        """Initialize the ConnectionManager.

        Args:
            config_store: Source of provider configurations
            connection_factory: Builds a connection for a provider config.
                Defaults to ToolProviderConnection with default timeouts.
        """
        self.config_store = config_store
        self._connection_factory = connection_factory or ToolProviderConnection

        self._connections: dict[str, ToolProviderConnection] = {}
        self._registry: dict[str, RegisteredTool] = {}
        self._errors: dict[str, str] = {}
        self._initialized = False
        self._init_task: asyncio.Task | None = None

        self._subscribers: dict[str, list[Callable[..., Any]]] = {
            event: [] for event in LIFECYCLE_EVENTS
        }
        self._background: set[asyncio.Task] = set()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # --- Lifecycle notifications ---

    def subscribe(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for a lifecycle event.

        Events and their callback arguments:
            initialized: (status: ServerStatus)
            provider_connected: (name: str, capabilities: ProviderCapabilities)
            provider_disconnected: (name: str)
            disconnected: ()

        Raises:
            ValueError: If the event name is unknown
        """
        if event not in self._subscribers:
            raise ValueError(f"Unknown lifecycle event: {event}")
        self._subscribers[event].append(callback)

    def _notify(self, event: str, *args: Any) -> None:
        for callback in list(self._subscribers[event]):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._background.add(task)
                    task.add_done_callback(self._background.discard)
            except Exception as e:
                logger.error(f"Subscriber for '{event}' failed: {e}")

    # --- Initialization ---

    async def initialize(self) -> None:
        """Connect to every enabled provider and build the registry.

        Safe to call repeatedly and concurrently. A provider that fails to
        connect is logged and left out; it never fails the whole call.
        """
        if self._initialized:
            return

        if self._init_task is None:
            self._init_task = asyncio.create_task(
                self._perform_initialization(), name="mcp-initialize"
            )

        task = self._init_task
        try:
            # Shielded so one cancelled caller does not abort the shared work
            await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _perform_initialization(self) -> None:
        logger.info("Initializing MCP connection manager...")

        configs = self.config_store.load()
        enabled = [config for config in configs if config.enabled]
        skipped = len(configs) - len(enabled)
        if skipped:
            logger.info(f"Skipping {skipped} disabled providers")

        if enabled:
            logger.info(f"Connecting to {len(enabled)} MCP providers...")

        results = await asyncio.gather(
            *(self._connect_provider(config) for config in enabled),
            return_exceptions=True,
        )

        registry: dict[str, RegisteredTool] = {}
        for config, result in zip(enabled, results):
            if isinstance(result, BaseException):
                self._errors[config.name] = str(result)
                logger.error(f"Error connecting to provider {config.name}: {result}")
                continue

            connection, capabilities = result
            self._connections[config.name] = connection
            self._register_capabilities(registry, config.name, capabilities)
            self._notify("provider_connected", config.name, capabilities)

        self._registry = registry
        self._initialized = True

        status = self.get_server_status()
        logger.info(
            f"Initialization completed. {len(status.connected_servers)} providers "
            f"connected, {status.total_tools} tools available"
        )
        self._notify("initialized", status)

    async def _connect_provider(
        self, config: ProviderConfig
    ) -> tuple[ToolProviderConnection, ProviderCapabilities]:
        connection = self._connection_factory(config)
        try:
            await connection.initialize()
            capabilities = await connection.discover_capabilities()
        except ProviderConnectionError:
            await connection.disconnect()
            raise
        except Exception as e:
            await connection.disconnect()
            raise ProviderConnectionError(config.name, str(e)) from e

        connection.add_close_listener(self._on_provider_closed)
        logger.info(
            f"Provider {config.name} connected. Tools: {len(capabilities.tools)}"
        )
        return connection, capabilities

    def _register_capabilities(
        self,
        registry: dict[str, RegisteredTool],
        provider: str,
        capabilities: ProviderCapabilities,
    ) -> None:
        for tool in capabilities.tools:
            previous = registry.get(tool.name)
            if previous is not None and previous.provider != provider:
                # Last registered provider wins
                logger.warning(
                    f"Tool '{tool.name}' from provider {provider} replaces the "
                    f"one from provider {previous.provider}"
                )
            registry[tool.name] = RegisteredTool(provider=provider, descriptor=tool)

    def _on_provider_closed(self, name: str) -> None:
        logger.warning(f"Provider {name} disconnected unexpectedly")
        self._errors[name] = "transport closed"
        self._notify("provider_disconnected", name)

    # --- Queries ---

    def get_available_tools(self) -> list[dict[str, Any]]:
        """Get the tools of connected providers for Ollama function calling.

        A provider that dropped out of band keeps its registry entries until
        the next reload, but its tools are no longer offered to the model.
        """
        return [
            entry.descriptor.to_ollama_tool()
            for entry in self._registry.values()
            if self._is_provider_connected(entry.provider)
        ]

    def _is_provider_connected(self, provider: str) -> bool:
        connection = self._connections.get(provider)
        return connection is not None and connection.is_connected()

    def get_tool_names(self) -> list[str]:
        return list(self._registry)

    def get_server_status(self) -> ServerStatus:
        """Snapshot of the manager state. Never waits on initialization."""
        return ServerStatus(
            connected_servers=[
                name
                for name, connection in self._connections.items()
                if connection.is_connected()
            ],
            total_tools=len(self._registry),
            is_initialized=self._initialized,
            failed_servers=dict(self._errors),
        )

    def get_servers(self) -> list[ServerInfo]:
        """List every configured provider with its live connection flag."""
        servers = []
        for config in self.config_store.load():
            connection = self._connections.get(config.name)
            connected = connection is not None and connection.is_connected()
            servers.append(
                ServerInfo(
                    name=config.name,
                    description=config.description,
                    enabled=config.enabled,
                    connected=connected,
                    command=config.command,
                    args=list(config.args),
                    tool_count=(
                        len(connection.capabilities.tools) if connection else 0
                    ),
                    error=self._errors.get(config.name),
                )
            )
        return servers

    # --- Dispatch ---

    async def call_tool(
        self, tool_name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Execute a tool on the provider that registered it.

        Raises:
            UnknownToolError: If no provider registered the tool
            ToolExecutionError: If the provider is gone or the call fails
        """
        await self.initialize()

        entry = self._registry.get(tool_name)
        if entry is None:
            raise UnknownToolError(tool_name, self.get_tool_names())

        connection = self._connections.get(entry.provider)
        if connection is None or not connection.is_connected():
            raise ToolExecutionError(
                tool_name, f"provider {entry.provider} is not connected"
            )

        logger.info(f"Executing tool {tool_name} on provider {entry.provider}")
        return await connection.call_tool(tool_name, arguments or {})

    async def read_resource(self, provider: str, uri: str) -> dict[str, Any]:
        """Read a resource from a connected provider.

        Raises:
            KeyError: If the provider is not connected
        """
        await self.initialize()

        connection = self._connections.get(provider)
        if connection is None or not connection.is_connected():
            raise KeyError(provider)
        return await connection.read_resource(uri)

    # --- Teardown and reload ---

    async def disconnect(self) -> None:
        """Disconnect from every provider and forget the registry."""
        if self._init_task is not None and not self._init_task.done():
            # Let a running initialization settle before tearing it down
            await asyncio.gather(self._init_task, return_exceptions=True)

        logger.info("Disconnecting from all MCP providers...")
        for name, connection in self._connections.items():
            try:
                await connection.disconnect()
                logger.info(f"Disconnected from provider {name}")
            except Exception as e:
                logger.error(f"Error disconnecting from provider {name}: {e}")

        self._connections.clear()
        self._registry.clear()
        self._errors.clear()
        self._initialized = False
        self._init_task = None

        self._notify("disconnected")

    async def reload_configuration(self) -> ServerStatus:
        """Tear everything down and initialize again from the config file."""
        logger.info("Reloading MCP configuration...")
        await self.disconnect()
        await self.initialize()
        return self.get_server_status()

    async def set_server_enabled(self, name: str, enabled: bool) -> ServerStatus:
        """Persist a provider's enabled flag and reload.

        Raises:
            FileNotFoundError: If the configuration file does not exist
            KeyError: If the provider is not configured
        """
        self.config_store.set_enabled(name, enabled)
        return await self.reload_configuration()
