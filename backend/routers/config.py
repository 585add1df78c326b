"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from services.config_manager import ConfigManager
from services.llm_service import LLMService

router = APIRouter()

PROVIDER_SECTIONS = ("openai", "gemini", "vllm")


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration"""

    provider: str | None = None
    openai: dict | None = None
    gemini: dict | None = None
    vllm: dict | None = None
    stream: dict | None = None


class ConfigResponse(BaseModel):
    """Configuration response"""

    provider: str
    openai: dict
    gemini: dict
    vllm: dict
    stream: dict


class ValidateResponse(BaseModel):
    """Validation response"""

    valid: bool
    message: str
    provider: str


def mask_key(key: str) -> str:
    """Mask an API key for display"""
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration with API keys masked"""
    config = ConfigManager.get_instance().get_config()

    sections = {}
    for name in PROVIDER_SECTIONS:
        section = config.get(name, {}).copy()
        section["apiKey"] = mask_key(section.get("apiKey", ""))
        sections[name] = section

    return ConfigResponse(
        provider=config.get("provider", "openai"),
        stream=config.get("stream", {}),
        **sections,
    )


@router.put("")
async def update_config(request: ConfigUpdateRequest) -> dict[str, Any]:
    """Update configuration"""
    config_manager = ConfigManager.get_instance()
    current_config = config_manager.get_config()

    # Update only provided fields
    if request.provider:
        current_config["provider"] = request.provider
    for name in PROVIDER_SECTIONS + ("stream",):
        update = getattr(request, name)
        if update:
            current_config[name] = {**current_config.get(name, {}), **update}

    config_manager.save_config(current_config)

    return {"status": "success", "message": "Configuration updated"}


@router.post("/validate", response_model=ValidateResponse)
async def validate_config() -> ValidateResponse:
    """Validate current configuration by testing LLM connection"""
    config = ConfigManager.get_instance().get_config()
    provider = config.get("provider", "openai")

    try:
        llm_service = LLMService(config)
        response = await llm_service.generate_response("Say 'OK' if you can hear me.")

        if response and len(response) > 0:
            return ValidateResponse(
                valid=True,
                message=f"Successfully connected to {provider}",
                provider=provider,
            )
        else:
            return ValidateResponse(
                valid=False,
                message="Received empty response from LLM",
                provider=provider,
            )

    except Exception as e:
        return ValidateResponse(
            valid=False,
            message=f"Connection failed: {str(e)}",
            provider=provider,
        )
