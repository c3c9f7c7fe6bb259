"""CLI entry point for ollama-easy.

This module provides the command-line interface for starting the server.
It can be invoked as `ollama-easy` (via the script entry point) or
`python -m ollama_easy`.
"""

import argparse
import logging
import sys

import uvicorn

from ollama_easy import __version__, create_app
from ollama_easy.config import OllamaEasySettings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def main() -> None:
    """Main entry point for the ollama-easy CLI.

    Parses command-line arguments, configures logging and starts the uvicorn
    server with the FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="ollama-easy",
        description="Local chat server for Ollama with MCP tool calling",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ollama-easy {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via OLLAMA_EASY_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via OLLAMA_EASY_PORT)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via OLLAMA_EASY_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Base directory for chats and config files (default: data, can be set via OLLAMA_EASY_DATA_DIR)",
    )

    parser.add_argument(
        "--max-tool-iterations",
        type=int,
        default=None,
        help="Cap on model calls within one tool turn (default: 5, can be set via OLLAMA_EASY_MAX_TOOL_ITERATIONS)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via OLLAMA_EASY_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.data_dir is not None:
        settings_kwargs["data_dir"] = args.data_dir
    if args.max_tool_iterations is not None:
        settings_kwargs["max_tool_iterations"] = args.max_tool_iterations
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = OllamaEasySettings(**settings_kwargs)

    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
