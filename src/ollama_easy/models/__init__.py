"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests, responses and SSE event payloads.
"""

from ollama_easy.models.base import CamelModel
from ollama_easy.models.chat import ChatStreamRequest
from ollama_easy.models.health import HealthResponse
from ollama_easy.models.mcp import ServerStatusResponse

__all__ = [
    "CamelModel",
    "ChatStreamRequest",
    "HealthResponse",
    "ServerStatusResponse",
]
