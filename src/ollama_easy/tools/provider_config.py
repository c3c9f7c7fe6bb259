"""Provider configuration file handling.

The configuration lives in a JSON file shaped like the one used by other MCP
hosts:

    {
        "mcpServers": {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "."],
                "env": {},
                "enabled": true,
                "description": "Local files"
            }
        }
    }
"""

import json
import logging
from pathlib import Path
from typing import Any

from ollama_easy.tools.types import ProviderConfig

logger = logging.getLogger(__name__)


def _provider_from_dict(name: str, data: dict[str, Any]) -> ProviderConfig:
    """Build a ProviderConfig from one mcpServers entry.

    Raises:
        ValueError: If the entry has no command
    """
    command = data.get("command")
    if not command or not isinstance(command, str):
        raise ValueError(f"Provider '{name}' has no command")

    return ProviderConfig(
        name=name,
        command=command,
        args=tuple(str(arg) for arg in data.get("args") or []),
        env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
        # Anything other than an explicit false counts as enabled
        enabled=data.get("enabled") is not False,
        description=data.get("description") or "",
    )


class ProviderConfigStore:
    """Reads and updates the MCP provider configuration file."""

    def __init__(self, config_path: Path):
        self.config_path = config_path

    def _read_raw(self) -> dict[str, Any]:
        if not self.config_path.exists():
            logger.warning(f"MCP configuration file not found: {self.config_path}")
            return {"mcpServers": {}}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading MCP configuration {self.config_path}: {e}")
            return {"mcpServers": {}}

        if not isinstance(data, dict):
            logger.error(f"MCP configuration {self.config_path} is not an object")
            return {"mcpServers": {}}

        return data

    def load(self) -> list[ProviderConfig]:
        """Load every configured provider, enabled or not.

        Invalid entries are skipped with a warning so one typo does not hide
        the remaining providers.

        Returns:
            Providers in file order
        """
        servers = self._read_raw().get("mcpServers") or {}
        providers: list[ProviderConfig] = []

        for name, entry in servers.items():
            if not isinstance(entry, dict):
                logger.warning(f"Skipping provider '{name}': entry is not an object")
                continue
            try:
                providers.append(_provider_from_dict(name, entry))
            except ValueError as e:
                logger.warning(f"Skipping provider '{name}': {e}")

        logger.info(f"MCP configuration loaded: {len(providers)} providers configured")
        return providers

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Persist the enabled flag of a provider.

        Raises:
            FileNotFoundError: If the configuration file does not exist
            KeyError: If the provider is not configured
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"MCP configuration file not found: {self.config_path}"
            )

        data = self._read_raw()
        servers = data.get("mcpServers") or {}
        if name not in servers:
            raise KeyError(name)

        servers[name]["enabled"] = enabled
        data["mcpServers"] = servers

        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"Provider {name} {'enabled' if enabled else 'disabled'}")
