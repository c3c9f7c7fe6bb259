"""Per-model system prompt service.

This module provides the SystemPromptService class for managing system prompts
stored in a single JSON file keyed by model name:

    {"prompts": {"default": "...", "llama3.2:latest": "..."}}

The "default" entry applies to any model without a prompt of its own.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"
MAX_PROMPT_LENGTH = 20000


class SystemPromptService:
    """Service for reading and editing per-model system prompts."""

    def __init__(self, prompts_file: Path):
        """Initialize the SystemPromptService.

        Args:
            prompts_file: Path to the JSON prompts file. Created on first write.
        """
        self.prompts_file = prompts_file

    def list_prompts(self) -> dict[str, str]:
        """Load all prompts keyed by model name.

        A missing or unreadable file yields an empty mapping.
        """
        if not self.prompts_file.exists():
            return {}

        try:
            with open(self.prompts_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load system prompts from {self.prompts_file}: {e}")
            return {}

        prompts = data.get("prompts") if isinstance(data, dict) else None
        if not isinstance(prompts, dict):
            logger.warning(f"System prompts file {self.prompts_file} has no 'prompts' object")
            return {}

        return {str(k): v for k, v in prompts.items() if isinstance(v, str)}

    def get_system_prompt(self, model: str) -> str:
        """Get the prompt for a model, falling back to the default prompt.

        Returns:
            The prompt text, or "" when neither exists
        """
        prompts = self.list_prompts()
        return prompts.get(model) or prompts.get(DEFAULT_KEY) or ""

    def get_prompt(self, model: str) -> str:
        """Get the prompt stored for exactly this model.

        Raises:
            FileNotFoundError: If no prompt is stored for the model
        """
        prompts = self.list_prompts()
        if model not in prompts:
            raise FileNotFoundError(f"No system prompt for '{model}'")
        return prompts[model]

    def set_prompt(self, model: str, content: str) -> None:
        """Create or replace the prompt for a model.

        Raises:
            ValueError: If the model name or content is invalid
        """
        if not model.strip():
            raise ValueError("Model name cannot be empty")
        if not content.strip():
            raise ValueError("Content cannot be empty or whitespace only")
        if len(content) > MAX_PROMPT_LENGTH:
            raise ValueError(
                f"Content exceeds maximum length of {MAX_PROMPT_LENGTH:,} characters"
            )

        prompts = self.list_prompts()
        prompts[model] = content
        self._save(prompts)
        logger.info(f"Saved system prompt for {model}")

    def delete_prompt(self, model: str) -> None:
        """Delete the prompt for a model.

        Raises:
            FileNotFoundError: If no prompt is stored for the model
        """
        prompts = self.list_prompts()
        if model not in prompts:
            raise FileNotFoundError(f"No system prompt for '{model}'")

        del prompts[model]
        self._save(prompts)
        logger.info(f"Deleted system prompt for {model}")

    def _save(self, prompts: dict[str, str]) -> None:
        self.prompts_file.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "updated_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "prompts": prompts,
        }
        with open(self.prompts_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
