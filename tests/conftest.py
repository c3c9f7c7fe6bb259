"""Pytest configuration and shared fixtures for ollama-easy tests.

This module provides common fixtures used across all test modules,
including test app creation, async client setup, and an in-process stand-in
for MCP provider connections.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ollama_easy import create_app
from ollama_easy.config import OllamaEasySettings
from ollama_easy.errors import ProviderConnectionError, ToolExecutionError
from ollama_easy.tools import ProviderCapabilities, ToolDescriptor


class FakeProviderConnection:
    """Behaves like ToolProviderConnection without launching a subprocess.

    Args:
        config: The provider config the manager asked for
        tools: Tool names the provider exposes
        fail: If set, initialize() fails with this message
        delay: Seconds initialize() takes
        results: Optional tool name -> result dict (or Exception to raise)
        resource_error: If set, read_resource() fails with this message
    """

    def __init__(
        self, config, tools=(), fail=None, delay=0.0, results=None, resource_error=None
    ):
        self.config = config
        self.tools = list(tools)
        self.fail = fail
        self.delay = delay
        self.results = results or {}
        self.resource_error = resource_error
        self.capabilities = ProviderCapabilities()
        self.connected = False
        self.disconnect_calls = 0
        self.calls = []
        self._listeners = []

    @property
    def name(self):
        return self.config.name

    def is_connected(self):
        return self.connected

    def add_close_listener(self, callback):
        self._listeners.append(callback)

    async def initialize(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ProviderConnectionError(self.name, self.fail)
        self.connected = True

    async def discover_capabilities(self):
        self.capabilities = ProviderCapabilities(
            tools=[
                ToolDescriptor(
                    name=tool,
                    description=f"{tool} from {self.name}",
                    input_schema={
                        "type": "object",
                        "properties": {"path": {"type": "string"}},
                    },
                    provider=self.name,
                )
                for tool in self.tools
            ]
        )
        return self.capabilities

    async def call_tool(self, tool_name, arguments=None):
        self.calls.append((tool_name, arguments))
        result = self.results.get(tool_name)
        if isinstance(result, Exception):
            raise result
        if result is None:
            result = {
                "content": [{"type": "text", "text": f"{tool_name} ran on {self.name}"}],
                "isError": False,
            }
        return result

    async def read_resource(self, uri):
        if self.resource_error:
            raise ProviderConnectionError(self.name, self.resource_error)
        return {"contents": [{"uri": uri, "text": "resource body"}]}

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        return True

    def drop(self):
        """Simulate the provider process exiting on its own."""
        self.connected = False
        for callback in self._listeners:
            callback(self.name)


class FakeProviders:
    """Connection factory handing out FakeProviderConnections.

    Per-provider behaviour is set in ``behaviour`` before the manager
    initializes; every connection built is recorded in ``launched``.
    """

    def __init__(self):
        self.behaviour = {}
        self.launched = []

    def __call__(self, config):
        connection = FakeProviderConnection(config, **self.behaviour.get(config.name, {}))
        self.launched.append(connection)
        return connection

    def launched_names(self):
        return [connection.name for connection in self.launched]

    def latest(self, name):
        return [c for c in self.launched if c.name == name][-1]


@pytest.fixture
def test_settings(tmp_path):
    """Create test settings with isolated temporary directories.

    Args:
        tmp_path: Pytest fixture providing a temporary directory.

    Returns:
        OllamaEasySettings: Settings instance configured for testing.
    """
    return OllamaEasySettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        data_dir=str(tmp_path),
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def fake_providers():
    """A FakeProviders factory to pass as a connection factory."""
    return FakeProviders()


@pytest.fixture
def write_mcp_config(test_settings):
    """Write an mcpServers mapping to the configured MCP config file.

    Returns:
        Callable taking the mcpServers dict and returning the file path.
    """

    def _write(servers):
        path = test_settings.resolved_mcp_config_file
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"mcpServers": servers}), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def test_app(test_settings):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
