"""FastAPI routers for API endpoints.

This package contains all route handlers organized by resource type.
Each router module defines endpoints for a specific domain (health, chat,
chats, mcp, system prompts).
"""

from ollama_easy.routers import chat, chats, health, mcp, system_prompts

__all__ = [
    "chat",
    "chats",
    "health",
    "mcp",
    "system_prompts",
]
