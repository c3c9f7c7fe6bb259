"""Pydantic models for system prompt API requests and responses."""

from pydantic import ConfigDict, Field, field_validator

from ollama_easy.models.base import CamelModel
from ollama_easy.services.system_prompts import MAX_PROMPT_LENGTH


class SystemPromptListResponse(CamelModel):
    """Response model for listing all system prompts."""

    prompts: dict[str, str] = Field(
        default_factory=dict,
        description="System prompts keyed by model name ('default' applies to all)",
    )


class SystemPromptResponse(CamelModel):
    """Response model for a single system prompt."""

    model: str = Field(..., description="Model name the prompt applies to")
    prompt: str = Field(..., description="Full prompt text")


class SetSystemPromptRequest(CamelModel):
    """Request model for creating or replacing a model's system prompt."""

    prompt: str = Field(
        ...,
        description="Content of the system prompt",
        min_length=1,
        max_length=MAX_PROMPT_LENGTH,
    )

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Validate that the prompt is not just whitespace."""
        if not v.strip():
            raise ValueError("Prompt cannot be empty or whitespace only")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{"prompt": "You are a concise assistant."}]
        }
    )
