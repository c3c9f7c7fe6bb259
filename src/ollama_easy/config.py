"""Configuration module for ollama-easy using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OllamaEasySettings(BaseSettings):
    """Main configuration settings for ollama-easy.

    All settings can be overridden via environment variables with the
    OLLAMA_EASY_ prefix. For example, OLLAMA_EASY_OLLAMA_HOST will override
    the ollama_host setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Ollama
    ollama_host: str = "http://localhost:11434"

    # Data locations (relative to data_dir)
    data_dir: str = "data"
    conversations_dir: str = "conversations"
    mcp_config_file: str = "mcp-config.json"
    system_prompts_file: str = "system-prompts.json"

    # Tool loop
    max_tool_iterations: int = Field(default=5, ge=1)

    # MCP providers (seconds)
    mcp_connect_timeout: float = 30.0
    mcp_request_timeout: float = 30.0

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="OLLAMA_EASY_")

    # --- Resolved paths (computed from data_dir + relative paths) ---

    @property
    def resolved_conversations_dir(self) -> Path:
        """Get the full path to the conversations directory."""
        return Path(self.data_dir) / self.conversations_dir

    @property
    def resolved_mcp_config_file(self) -> Path:
        """Get the full path to the MCP provider configuration file."""
        return Path(self.data_dir) / self.mcp_config_file

    @property
    def resolved_system_prompts_file(self) -> Path:
        """Get the full path to the system prompts file."""
        return Path(self.data_dir) / self.system_prompts_file
