"""ollama-easy: local chat server for Ollama with MCP tool calling.

This package provides a REST API and SSE streaming interface for chatting
with local Ollama models, letting them call tools exposed by MCP provider
subprocesses during a conversation turn.
"""

__version__ = "0.1.0"

from ollama_easy.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
