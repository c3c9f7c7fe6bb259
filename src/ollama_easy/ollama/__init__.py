"""Ollama client wrapper and integration layer.

This package provides the async client wrapper for communicating with the
Ollama API. All Ollama generation calls are async and streaming.
"""

from ollama_easy.ollama.client import OllamaClient

__all__ = ["OllamaClient"]
