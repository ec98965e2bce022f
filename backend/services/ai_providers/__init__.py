"""
AI Providers factory module

Provides factory functions to get the appropriate text/image generation providers
based on environment configuration.

Configuration Priority (highest to lowest):
    1. Flask app.config
    2. Environment variables (.env file)
    3. Default values

Environment Variables:
    AI_PROVIDER_FORMAT: "gemini" (default), "openai", or "vertex" (Edit Proposer)

    For Gemini format (Google GenAI SDK):
        GOOGLE_API_KEY: API key
        GOOGLE_API_BASE: API base URL (e.g., https://aihubmix.com/gemini)

    For OpenAI format:
        OPENAI_API_KEY: API key
        OPENAI_API_BASE: API base URL (e.g., https://aihubmix.com/v1)

    For Vertex AI format (Google Cloud):
        VERTEX_PROJECT_ID: GCP project ID
        VERTEX_LOCATION: GCP region (default: us-central1)
        GOOGLE_APPLICATION_CREDENTIALS: Path to service account JSON file

    IMAGE_PROVIDER_FORMAT: "together" (default), "openai", or "gemini" (Image Synthesizer)
        TOGETHER_API_KEY / TOGETHER_API_BASE for Together FLUX
"""

import logging
import os
from typing import Any, Dict, Optional

from .image import (
    GenAIImageProvider,
    ImageProvider,
    ImageProviderError,
    OpenAIImageProvider,
    SynthesizedImage,
    TogetherImageProvider,
)
from .text import GenAITextProvider, OpenAITextProvider, TextProvider

logger = logging.getLogger(__name__)

__all__ = [
    "TextProvider",
    "GenAITextProvider",
    "OpenAITextProvider",
    "ImageProvider",
    "ImageProviderError",
    "SynthesizedImage",
    "GenAIImageProvider",
    "OpenAIImageProvider",
    "TogetherImageProvider",
    "get_text_provider",
    "get_image_provider",
    "get_provider_format",
    "get_image_provider_format",
]


def _get_config_value(key: str, default: str = None) -> str:
    """
    Helper to get config value with priority: app.config > env var > default
    """
    try:
        from flask import current_app

        if current_app and hasattr(current_app, "config"):
            if key in current_app.config:
                config_value = current_app.config.get(key)
                if config_value is not None and config_value != "":
                    logger.debug(f"[CONFIG] Using {key} from app.config")
                    return str(config_value)
            else:
                logger.debug(f"[CONFIG] Key {key} not found in app.config, checking env var")
    except RuntimeError as e:
        logger.debug(f"[CONFIG] Not in Flask context for {key}: {e}")

    env_value = os.getenv(key)
    if env_value:
        logger.debug(f"[CONFIG] Using {key} from environment")
        return env_value

    if default is not None:
        logger.debug(f"[CONFIG] Using {key} default: {default}")
        return default

    logger.debug(f"[CONFIG] No value found for {key}, returning None")
    return None


def get_provider_format() -> str:
    """
    Get the configured text provider format.

    Returns:
        "gemini", "openai", or "vertex"
    """
    return _get_config_value("AI_PROVIDER_FORMAT", "gemini").lower()


def get_image_provider_format() -> str:
    """
    Get the configured image provider format.

    Returns:
        "together", "openai", or "gemini"
    """
    return _get_config_value("IMAGE_PROVIDER_FORMAT", "together").lower()


def _get_provider_config(provider_format: str) -> Dict[str, Any]:
    """
    Resolve credentials for a Google/OpenAI style provider format.
    """
    if provider_format == "vertex":
        project_id = _get_config_value("VERTEX_PROJECT_ID")
        location = _get_config_value("VERTEX_LOCATION", "us-central1")

        if not project_id:
            raise ValueError(
                "VERTEX_PROJECT_ID is required when AI_PROVIDER_FORMAT=vertex. "
                "Also ensure GOOGLE_APPLICATION_CREDENTIALS is set to point to your service account JSON file."
            )

        logger.info(f"Provider config - format: vertex, project: {project_id}, location: {location}")
        return {
            "format": "vertex",
            "project_id": project_id,
            "location": location,
        }

    if provider_format == "openai":
        api_key = _get_config_value("OPENAI_API_KEY") or _get_config_value("GOOGLE_API_KEY")
        api_base = _get_config_value("OPENAI_API_BASE", "https://api.openai.com/v1")

        if not api_key:
            raise ValueError("OPENAI_API_KEY or GOOGLE_API_KEY is required when the openai format is selected.")

        logger.info(f"Provider config - format: openai, api_base: {api_base}")
        return {
            "format": "openai",
            "api_key": api_key,
            "api_base": api_base,
        }

    # Gemini format (default)
    api_key = _get_config_value("GOOGLE_API_KEY")
    api_base = _get_config_value("GOOGLE_API_BASE")

    logger.info(
        f"Provider config - format: gemini, api_base: {api_base}, api_key: {'***' if api_key else 'None'}"
    )

    if not api_key:
        raise ValueError("GOOGLE_API_KEY (from app config or environment) is required")

    return {
        "format": "gemini",
        "api_key": api_key,
        "api_base": api_base,
    }


def get_text_provider(model: Optional[str] = None, temperature: Optional[float] = None) -> TextProvider:
    """
    Factory function to get the Edit Proposer's text generation provider
    """
    model = model or _get_config_value("TEXT_MODEL", "gemini-2.5-flash")
    if temperature is None:
        temperature = float(_get_config_value("EDIT_TEMPERATURE", "0.7"))

    config = _get_provider_config(get_provider_format())
    provider_format = config["format"]

    if provider_format == "openai":
        logger.info(f"Using OpenAI format for text generation, model: {model}")
        return OpenAITextProvider(
            api_key=config["api_key"], api_base=config["api_base"], model=model, temperature=temperature
        )
    if provider_format == "vertex":
        logger.info(f"Using Vertex AI for text generation, model: {model}, project: {config['project_id']}")
        return GenAITextProvider(
            model=model,
            vertexai=True,
            project_id=config["project_id"],
            location=config["location"],
            temperature=temperature,
        )

    logger.info(f"Using Gemini format for text generation, model: {model}")
    return GenAITextProvider(
        api_key=config["api_key"], api_base=config["api_base"], model=model, temperature=temperature
    )


def get_image_provider(model: Optional[str] = None) -> ImageProvider:
    """
    Factory function to get the Image Synthesizer provider based on configuration

    Note:
        The OpenAI images API only supports a few fixed sizes; the closest one
        to the requested aspect ratio is used.
    """
    provider_format = get_image_provider_format()

    if provider_format == "together":
        api_key = _get_config_value("TOGETHER_API_KEY")
        if not api_key:
            raise ValueError("TOGETHER_API_KEY is required when IMAGE_PROVIDER_FORMAT=together")
        model = model or _get_config_value("IMAGE_MODEL", "black-forest-labs/FLUX.1-schnell")
        api_base = _get_config_value("TOGETHER_API_BASE", "https://api.together.xyz/v1")
        logger.info(f"Using Together for image generation, model: {model}")
        return TogetherImageProvider(api_key=api_key, api_base=api_base, model=model)

    if provider_format == "openai":
        config = _get_provider_config("openai")
        model = model or _get_config_value("IMAGE_MODEL", "gpt-image-1")
        logger.info(f"Using OpenAI format for image generation, model: {model}")
        return OpenAIImageProvider(api_key=config["api_key"], api_base=config["api_base"], model=model)

    if provider_format in ("gemini", "vertex"):
        config = _get_provider_config(provider_format)
        model = model or _get_config_value("IMAGE_MODEL", "gemini-2.5-flash-image")
        if config["format"] == "vertex":
            logger.info(f"Using Vertex AI for image generation, model: {model}, project: {config['project_id']}")
            return GenAIImageProvider(
                model=model,
                vertexai=True,
                project_id=config["project_id"],
                location=config["location"],
            )
        logger.info(f"Using Gemini format for image generation, model: {model}")
        return GenAIImageProvider(api_key=config["api_key"], api_base=config["api_base"], model=model)

    raise ValueError(f"Unsupported IMAGE_PROVIDER_FORMAT: {provider_format}")
