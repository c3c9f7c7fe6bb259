"""Exception hierarchy for ollama-easy.

Routers translate these into HTTP errors; the chat orchestrator turns them
into push-channel events.
"""


class OllamaEasyError(Exception):
    """Base class for all ollama-easy errors."""


class ProviderConnectionError(OllamaEasyError):
    """A tool provider subprocess could not be started or handshaken."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"Provider '{provider}': {message}")


class ToolExecutionError(OllamaEasyError):
    """A tool call was rejected, raised, or reported an error result."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class UnknownToolError(ToolExecutionError):
    """No connected provider registered a tool with the requested name."""

    def __init__(self, tool_name: str, available: list[str] | None = None):
        self.available = available or []
        listing = ", ".join(self.available) if self.available else "none"
        super().__init__(
            tool_name, f"tool not available (available tools: {listing})"
        )


class TransportTimeoutError(OllamaEasyError):
    """An Ollama request exceeded its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Stream timeout after {timeout:g}s")


class StreamParseError(OllamaEasyError):
    """A streamed response fragment had an unexpected shape."""


class MaxIterationsExceeded(OllamaEasyError):
    """The tool loop hit its iteration cap while tools were still requested."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Max tool iterations ({max_iterations}) reached")
