"""Async Ollama client wrapper.

This module provides an async wrapper around the ollama.AsyncClient for
communicating with the Ollama API. All generation calls stream, and every
call carries its own deadline. The client is designed to be created once at
startup and reused.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

import ollama

from ollama_easy.errors import TransportTimeoutError

logger = logging.getLogger(__name__)


def _chunk_to_dict(chunk: Any) -> dict[str, Any]:
    """Convert a response chunk from the ollama library into a plain dict."""
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump()
    if isinstance(chunk, dict):
        return chunk
    return vars(chunk)


class OllamaClient:
    """Async client for interacting with the Ollama API.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
        """
        self.host = host
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def _stream_with_deadline(
        self, stream: AsyncIterator[Any], timeout: float | None
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield chunks from an ollama stream until it ends or the deadline passes.

        The deadline covers the whole request, not a single read. Only the
        reads themselves run under the timeout, never the consumer's work
        between chunks. The underlying HTTP response is closed on exit,
        including when the consumer stops iterating or is cancelled.

        Raises:
            TransportTimeoutError: If the deadline passes before the stream ends
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        iterator = stream.__aiter__()

        try:
            while True:
                try:
                    if deadline is None:
                        chunk = await iterator.__anext__()
                    else:
                        async with asyncio.timeout_at(deadline):
                            chunk = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except TimeoutError:
                    logger.error(f"Ollama stream timed out after {timeout:g}s")
                    raise TransportTimeoutError(timeout) from None

                yield _chunk_to_dict(chunk)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def chat_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream chat responses from Ollama (/api/chat).

        Args:
            model: The model name to use for the chat
            messages: List of message dicts in Ollama format:
                      [{"role": "user", "content": "..."}, ...]
            tools: Optional function-calling tool descriptors
            options: Optional model parameters (temperature, etc.)
            timeout: Deadline for the whole request in seconds

        Yields:
            dict: Response chunks from Ollama. Each chunk contains:
                  - model: str - The model name
                  - message: dict - role, content and optional tool_calls
                  - done: bool - True on the final chunk

        Raises:
            TransportTimeoutError: If the deadline passes
            Exception: If the Ollama API request fails

        Example:
            >>> async for chunk in client.chat_stream(
            ...     model="llama3.2:latest",
            ...     messages=[{"role": "user", "content": "Hello"}],
            ...     timeout=120,
            ... ):
            ...     print(chunk["message"]["content"], end="")
        """
        logger.debug(
            f"Starting chat stream with model: {model}, "
            f"{len(messages)} messages, {len(tools or [])} tools"
        )

        stream = await self._client.chat(
            model=model,
            messages=messages,
            tools=tools or None,
            stream=True,
            options=options,
        )
        async with aclosing(self._stream_with_deadline(stream, timeout)) as chunks:
            async for chunk in chunks:
                yield chunk

        logger.debug("Chat stream completed")

    async def generate_stream(
        self,
        model: str,
        prompt: str,
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a plain completion from Ollama (/api/generate).

        Args:
            model: The model name
            prompt: The full prompt text
            options: Optional model parameters
            timeout: Deadline for the whole request in seconds

        Yields:
            dict: Response chunks with "response" text and a "done" flag

        Raises:
            TransportTimeoutError: If the deadline passes
            Exception: If the Ollama API request fails
        """
        logger.debug(f"Starting generate stream with model: {model}")

        stream = await self._client.generate(
            model=model,
            prompt=prompt,
            stream=True,
            options=options,
        )
        async with aclosing(self._stream_with_deadline(stream, timeout)) as chunks:
            async for chunk in chunks:
                yield chunk

        logger.debug("Generate stream completed")

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally; closing an in-flight
        stream is handled by the stream iterators themselves.
        """
        logger.debug("OllamaClient closed")
