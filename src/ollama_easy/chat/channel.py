"""Push channel carrying named progress events to the client.

The orchestrator emits events into a PushChannel; the chat router drains the
channel into an SSE response. Events use the sse-starlette dict shape
{"event": name, "data": json}.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from pydantic import BaseModel

from ollama_easy.errors import OllamaEasyError

logger = logging.getLogger(__name__)

# Logged at INFO; everything else at DEBUG
_NOTABLE_EVENTS = {"status", "complete", "error", "warning"}


class PushChannelClosed(OllamaEasyError):
    """The client side of the push channel has gone away."""


def _serialize(payload: BaseModel | dict[str, Any]) -> str:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True)
    return json.dumps(payload, ensure_ascii=False, default=str)


class PushChannel:
    """One-way queue of server-sent events for a single chat turn."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, str] | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event_type: str, payload: BaseModel | dict[str, Any]) -> None:
        """Queue one named event.

        Raises:
            PushChannelClosed: If the channel has been closed
        """
        if self._closed:
            raise PushChannelClosed(f"Cannot emit '{event_type}': channel closed")

        data = _serialize(payload)
        if event_type in _NOTABLE_EVENTS:
            logger.info(f"SSE event [{event_type}]: {data}")
        else:
            logger.debug(f"SSE event [{event_type}]")

        self._queue.put_nowait({"event": event_type, "data": data})

    def close(self) -> None:
        """End the stream. Further emits raise PushChannelClosed."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[dict[str, str]]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
