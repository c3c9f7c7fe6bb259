"""System prompts router for managing per-model prompts.

This module provides REST API endpoints for:
- Listing all system prompts
- Getting, setting and deleting the prompt of one model
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ollama_easy.dependencies import get_system_prompt_service
from ollama_easy.models.system_prompts import (
    SetSystemPromptRequest,
    SystemPromptListResponse,
    SystemPromptResponse,
)
from ollama_easy.services import SystemPromptService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/system-prompts", tags=["system-prompts"])

Service = Annotated[SystemPromptService, Depends(get_system_prompt_service)]


def _prompt_not_found(model: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": {
                "code": "prompt_not_found",
                "message": f"No system prompt for '{model}'",
                "details": {"model": model},
            }
        },
    )


@router.get(
    "",
    response_model=SystemPromptListResponse,
    summary="List all system prompts",
)
async def list_system_prompts(service: Service) -> SystemPromptListResponse:
    """List all system prompts keyed by model name."""
    return SystemPromptListResponse(prompts=service.list_prompts())


@router.get(
    "/{model:path}",
    response_model=SystemPromptResponse,
    summary="Get a model's system prompt",
)
async def get_system_prompt(model: str, service: Service) -> SystemPromptResponse:
    """Get the prompt stored for exactly this model (no default fallback).

    Raises:
        HTTPException: 404 if no prompt is stored for the model
    """
    try:
        prompt = service.get_prompt(model)
    except FileNotFoundError:
        raise _prompt_not_found(model)
    return SystemPromptResponse(model=model, prompt=prompt)


@router.put(
    "/{model:path}",
    response_model=SystemPromptResponse,
    summary="Set a model's system prompt",
)
async def set_system_prompt(
    model: str, request: SetSystemPromptRequest, service: Service
) -> SystemPromptResponse:
    """Create or replace the prompt for a model.

    Raises:
        HTTPException: 400 if the prompt is invalid
    """
    try:
        service.set_prompt(model, request.prompt)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": {
                    "code": "invalid_prompt",
                    "message": str(e),
                    "details": {"model": model},
                }
            },
        )
    return SystemPromptResponse(model=model, prompt=request.prompt)


@router.delete(
    "/{model:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a model's system prompt",
)
async def delete_system_prompt(model: str, service: Service) -> None:
    """Delete the prompt stored for a model.

    Raises:
        HTTPException: 404 if no prompt is stored for the model
    """
    try:
        service.delete_prompt(model)
    except FileNotFoundError:
        raise _prompt_not_found(model)
