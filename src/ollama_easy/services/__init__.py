"""Business logic services for ollama-easy.

This package contains the service classes that back collaborators of the
chat orchestrator, such as per-model system prompts.
"""

from ollama_easy.services.system_prompts import SystemPromptService

__all__ = [
    "SystemPromptService",
]
