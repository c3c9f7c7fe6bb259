"""A single connection to an MCP tool provider.

Each ToolProviderConnection launches one provider subprocess over the MCP
stdio transport and keeps its client session alive in a dedicated task. The
transport and session context managers are entered and exited inside that
task, so the anyio cancel scopes they open never cross task boundaries.
Incoming messages pass through a relay that notices the end of the read
stream, so a provider that exits is marked closed without waiting for the
next call or heartbeat.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import anyio
from anyio.abc import ObjectSendStream
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED, Implementation

from ollama_easy.errors import ProviderConnectionError, ToolExecutionError
from ollama_easy.tools.types import (
    ConnectionState,
    ProviderCapabilities,
    ProviderConfig,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

CLIENT_INFO = Implementation(name="ollama-easy", version="0.1.0")

# Errors raised by the anyio memory streams once the subprocess is gone
_TRANSPORT_CLOSED_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
)


def _result_text(result: Any) -> str:
    """Join the text blocks of a tool result."""
    parts = []
    for block in getattr(result, "content", None) or []:
        text = getattr(block, "text", None)
        if text:
            parts.append(text)
    return "\n".join(parts)


class ToolProviderConnection:
    """Owns one provider subprocess and its MCP client session.

    Attributes:
        config: The provider's launch configuration
        state: Current lifecycle state
        capabilities: Result of the last discover_capabilities() call
    """

    def __init__(
        self,
        config: ProviderConfig,
        connect_timeout: float = 30.0,
        request_timeout: float = 30.0,
        heartbeat_interval: float | None = 30.0,
    ) -> None:
        self.config = config
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.UNCONNECTED
        self.capabilities = ProviderCapabilities()

        self._session: ClientSession | None = None
        self._runner: asyncio.Task | None = None
        self._handshake: asyncio.Future | None = None
        self._shutdown: asyncio.Event | None = None
        self._close_listeners: list[Callable[[str], Any]] = []

    @property
    def name(self) -> str:
        return self.config.name

    def is_connected(self) -> bool:
        """Check whether the connection can currently serve tool calls."""
        return self.state is ConnectionState.CONNECTED and self._session is not None

    def add_close_listener(self, callback: Callable[[str], Any]) -> None:
        """Register a callback for out-of-band transport closes.

        The callback receives the provider name. It is not called for an
        explicit disconnect().
        """
        self._close_listeners.append(callback)

    def _server_parameters(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self.config.command,
            args=list(self.config.args),
            env={**os.environ, **self.config.env},
        )

    async def initialize(self) -> None:
        """Start the provider subprocess and perform the MCP handshake.

        Raises:
            ProviderConnectionError: If the process cannot be started, the
                handshake is rejected, or it does not finish in time
        """
        if self.is_connected():
            logger.debug(f"Provider {self.name} already connected")
            return

        logger.info(
            f"Starting provider {self.name}: {self.config.command} "
            f"{' '.join(self.config.args)}"
        )
        self.state = ConnectionState.CONNECTING

        loop = asyncio.get_running_loop()
        self._handshake = loop.create_future()
        self._shutdown = asyncio.Event()
        self._runner = asyncio.create_task(
            self._run_session(), name=f"mcp-provider-{self.name}"
        )

        try:
            await asyncio.wait_for(
                asyncio.shield(self._handshake), timeout=self.connect_timeout
            )
        except asyncio.TimeoutError:
            self._handshake.cancel()
            self._runner.cancel()
            await self._stop_runner()
            self.state = ConnectionState.FAILED
            logger.error(
                f"Handshake with provider {self.name} timed out after "
                f"{self.connect_timeout:g}s"
            )
            raise ProviderConnectionError(
                self.name, f"handshake timed out after {self.connect_timeout:g}s"
            )
        except ProviderConnectionError:
            await self._stop_runner()
            self.state = ConnectionState.FAILED
            raise

        logger.info(f"Provider {self.name} connected")

    async def _run_session(self) -> None:
        """Hold the transport and session open until shutdown is requested."""
        assert self._handshake is not None and self._shutdown is not None
        handshake = self._handshake

        transport_lost = asyncio.Event()
        relay: asyncio.Task | None = None

        try:
            async with stdio_client(self._server_parameters()) as (
                read_stream,
                write_stream,
            ):
                relay_send, relay_receive = anyio.create_memory_object_stream(0)
                relay = asyncio.create_task(
                    self._relay_incoming(read_stream, relay_send, transport_lost),
                    name=f"mcp-relay-{self.name}",
                )
                async with ClientSession(
                    relay_receive,
                    write_stream,
                    read_timeout_seconds=timedelta(seconds=self.request_timeout),
                    client_info=CLIENT_INFO,
                ) as session:
                    await session.initialize()
                    self._session = session
                    self.state = ConnectionState.CONNECTED
                    if not handshake.done():
                        handshake.set_result(None)
                    await self._hold_open(session, transport_lost)
                    if transport_lost.is_set() and not self._shutdown.is_set():
                        self._handle_transport_closed()
        except Exception as e:
            if not handshake.done():
                logger.error(f"Initialization failed for provider {self.name}: {e}")
                handshake.set_exception(ProviderConnectionError(self.name, str(e)))
            else:
                logger.warning(f"Transport error on provider {self.name}: {e}")
        finally:
            if relay is not None:
                relay.cancel()
                await asyncio.gather(relay, return_exceptions=True)
            self._session = None
            closed_unexpectedly = (
                self.state is ConnectionState.CONNECTED
                and not self._shutdown.is_set()
            )
            if not handshake.done():
                handshake.set_exception(
                    ProviderConnectionError(self.name, "transport closed during handshake")
                )
            if closed_unexpectedly:
                self._handle_transport_closed()

    async def _relay_incoming(
        self,
        source: Any,
        sink: ObjectSendStream,
        transport_lost: asyncio.Event,
    ) -> None:
        """Forward provider messages to the session and flag end of stream.

        The stdio transport closes its read stream as soon as the subprocess
        exits, so the end of this loop is the moment the provider is gone.
        """
        try:
            async with sink:
                async for message in source:
                    await sink.send(message)
        except _TRANSPORT_CLOSED_ERRORS:
            logger.debug(f"Read stream from provider {self.name} closed")
        except Exception as e:
            logger.warning(f"Reading from provider {self.name} failed: {e}")
        finally:
            transport_lost.set()

    async def _hold_open(
        self, session: ClientSession, transport_lost: asyncio.Event
    ) -> None:
        """Wait for shutdown or a lost transport, pinging between waits."""
        assert self._shutdown is not None

        waiters = [
            asyncio.create_task(self._shutdown.wait()),
            asyncio.create_task(transport_lost.wait()),
        ]
        try:
            while True:
                done, _ = await asyncio.wait(
                    waiters,
                    timeout=self.heartbeat_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if done:
                    return
                await session.send_ping()
        finally:
            for waiter in waiters:
                waiter.cancel()

    def _handle_transport_closed(self) -> None:
        """Mark the connection closed and tell the listeners."""
        if self.state is ConnectionState.DISCONNECTED:
            return

        logger.warning(f"Transport to provider {self.name} closed")
        self.state = ConnectionState.DISCONNECTED
        self._session = None

        for callback in list(self._close_listeners):
            try:
                callback(self.name)
            except Exception as e:
                logger.error(f"Close listener for provider {self.name} failed: {e}")

    async def _stop_runner(self) -> None:
        if self._runner is None:
            return

        assert self._shutdown is not None
        self._shutdown.set()
        if self._handshake is not None and not self._handshake.done():
            # Still inside the handshake; nothing will look at the event
            self._runner.cancel()
        await asyncio.gather(self._runner, return_exceptions=True)
        self._runner = None

    async def discover_capabilities(self) -> ProviderCapabilities:
        """Query the provider for its tools, resources, and prompts.

        Tools are mandatory. Resources and prompts are optional, and a
        provider that does not support them is recorded as such.

        Raises:
            ProviderConnectionError: If the tool list cannot be fetched
        """
        session = self._session
        if session is None or not self.is_connected():
            raise ProviderConnectionError(self.name, "not connected")

        capabilities = ProviderCapabilities()

        try:
            tools_result = await session.list_tools()
        except Exception as e:
            logger.error(f"Failed to list tools on provider {self.name}: {e}")
            raise ProviderConnectionError(self.name, f"tool discovery failed: {e}")

        capabilities.tools = [
            ToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
                provider=self.name,
            )
            for tool in tools_result.tools or []
        ]
        logger.info(f"Provider {self.name}: found {len(capabilities.tools)} tools")

        try:
            resources_result = await session.list_resources()
            capabilities.resources = [
                r.model_dump(mode="json", exclude_none=True)
                for r in resources_result.resources or []
            ]
            capabilities.resources_supported = True
        except Exception as e:
            logger.debug(f"Provider {self.name} does not support resources: {e}")

        try:
            prompts_result = await session.list_prompts()
            capabilities.prompts = [
                p.model_dump(mode="json", exclude_none=True)
                for p in prompts_result.prompts or []
            ]
            capabilities.prompts_supported = True
        except Exception as e:
            logger.debug(f"Provider {self.name} does not support prompts: {e}")

        self.capabilities = capabilities
        return capabilities

    async def call_tool(
        self, tool_name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Execute a tool on the provider.

        Returns:
            The tool result as a JSON-compatible dict (content, structured
            content, isError)

        Raises:
            ToolExecutionError: If the connection is not usable, the
                transport fails, or the provider reports an error
        """
        session = self._session
        if session is None or not self.is_connected():
            raise ToolExecutionError(
                tool_name, f"provider {self.name} is not connected"
            )

        logger.info(f"Calling tool {tool_name} on provider {self.name}")

        try:
            result = await session.call_tool(tool_name, arguments or {})
        except _TRANSPORT_CLOSED_ERRORS as e:
            self._handle_transport_closed()
            raise ToolExecutionError(
                tool_name, f"provider {self.name} closed the connection"
            ) from e
        except McpError as e:
            if e.error.code == CONNECTION_CLOSED:
                self._handle_transport_closed()
                raise ToolExecutionError(
                    tool_name, f"provider {self.name} closed the connection"
                ) from e
            logger.error(f"Tool {tool_name} rejected by provider {self.name}: {e}")
            raise ToolExecutionError(tool_name, e.error.message) from e
        except Exception as e:
            logger.error(f"Error executing tool {tool_name} on {self.name}: {e}")
            raise ToolExecutionError(tool_name, str(e)) from e

        if result.isError:
            message = _result_text(result) or "provider reported an error"
            logger.warning(f"Tool {tool_name} returned an error: {message}")
            raise ToolExecutionError(tool_name, message)

        logger.info(f"Tool {tool_name} executed successfully")
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def read_resource(self, uri: str) -> dict[str, Any]:
        """Read a resource from the provider.

        Raises:
            ProviderConnectionError: If the connection is not usable or the
                provider cannot serve the resource
        """
        session = self._session
        if session is None or not self.is_connected():
            raise ProviderConnectionError(self.name, "not connected")

        logger.info(f"Reading resource {uri} from provider {self.name}")

        try:
            result = await session.read_resource(uri)
        except _TRANSPORT_CLOSED_ERRORS as e:
            self._handle_transport_closed()
            raise ProviderConnectionError(self.name, "connection closed") from e
        except McpError as e:
            if e.error.code == CONNECTION_CLOSED:
                self._handle_transport_closed()
                raise ProviderConnectionError(self.name, "connection closed") from e
            logger.error(f"Resource {uri} rejected by provider {self.name}: {e}")
            raise ProviderConnectionError(
                self.name, f"resource read failed: {e.error.message}"
            ) from e
        except Exception as e:
            logger.error(f"Error reading resource {uri} on {self.name}: {e}")
            raise ProviderConnectionError(
                self.name, f"resource read failed: {e}"
            ) from e

        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def disconnect(self) -> bool:
        """Tear down the session and the subprocess.

        Safe to call more than once.

        Returns:
            True once the connection is down
        """
        if self._runner is None:
            logger.debug(f"Provider {self.name} already disconnected")
            if self.state is ConnectionState.CONNECTED:
                self.state = ConnectionState.DISCONNECTED
            return True

        logger.info(f"Disconnecting provider {self.name}")
        await self._stop_runner()
        self._session = None
        if self.state is not ConnectionState.FAILED:
            self.state = ConnectionState.DISCONNECTED
        logger.info(f"Provider {self.name} disconnected")
        return True
