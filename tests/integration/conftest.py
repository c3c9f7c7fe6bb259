"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures that ensure
proper test isolation and mocking for API endpoint tests.
"""

from unittest.mock import AsyncMock, patch

import pytest


@pytest.fixture(autouse=True)
def mock_ollama_client():
    """Mock OllamaClient for all integration tests.

    This fixture patches the OllamaClient class before the app is created,
    ensuring the lifespan uses our mock instead of creating a real client.
    Tests assign async generator functions to chat_stream/generate_stream.
    """
    with patch("ollama_easy.app.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.host = "http://localhost:11434"
        mock_instance.check_connection.return_value = True

        # Return the mock instance when OllamaClient is instantiated
        mock_client_class.return_value = mock_instance

        yield mock_instance


@pytest.fixture(autouse=True)
def mock_provider_connections(fake_providers):
    """Replace MCP provider subprocesses with in-process fakes.

    The lifespan builds its ConnectionManager with a factory wrapping
    ToolProviderConnection; patching the class makes that factory hand out
    FakeProviderConnections instead.
    """

    def _factory(config, **kwargs):
        return fake_providers(config)

    with patch("ollama_easy.app.ToolProviderConnection", side_effect=_factory):
        yield fake_providers
