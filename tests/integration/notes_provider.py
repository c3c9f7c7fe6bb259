"""A small MCP provider launched over stdio by the subprocess tests."""

import os
import threading

from mcp.server.fastmcp import FastMCP

server = FastMCP("notes")


@server.tool()
def echo(text: str) -> str:
    """Return the text unchanged."""
    return f"echo: {text}"


@server.tool()
def fail(reason: str) -> str:
    """Always raise, so the client sees an error result."""
    raise ValueError(reason)


@server.tool()
def exit_soon() -> str:
    """Exit the process shortly after answering."""
    threading.Timer(0.2, os._exit, args=(0,)).start()
    return "bye"


@server.tool()
def crash() -> str:
    """Exit the process before answering."""
    os._exit(0)


@server.resource("file:///notes/today.txt")
def today() -> str:
    return "stand-up at ten"


if __name__ == "__main__":
    server.run()
