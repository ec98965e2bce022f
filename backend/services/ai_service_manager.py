"""
WorksheetEditingService manager for optimizing provider initialization

The editing service is created once per Flask app (stored in
``app.extensions``) and AI providers are cached per model, so provider clients
are not rebuilt on every request.

Usage:
    from services.ai_service_manager import get_editing_service

    # In your controller
    result = get_editing_service().edit(request.get_json())
"""

import logging
from threading import Lock
from typing import Optional
from flask import current_app
from .ai_providers import (
    ImageProvider,
    TextProvider,
    get_image_provider,
    get_image_provider_format,
    get_provider_format,
    get_text_provider,
)
from .image_synthesis import RetryPolicy
from .worksheet_editing_service import WorksheetEditingService

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'worksheet_editing_service'

_lock = Lock()

# Provider cache to avoid re-initialization when models don't change
_text_provider_cache: dict = {}
_image_provider_cache: dict = {}
_cache_lock = Lock()


def _get_cached_text_provider(model: str) -> TextProvider:
    """
    Get or create a cached text provider instance

    Args:
        model: Model name to use

    Returns:
        Cached or new TextProvider instance
    """
    key = (get_provider_format(), model)
    with _cache_lock:
        if key not in _text_provider_cache:
            logger.info(f"Creating new TextProvider for model: {model}")
            _text_provider_cache[key] = get_text_provider(model=model)
        else:
            logger.debug(f"Reusing cached TextProvider for model: {model}")
        return _text_provider_cache[key]


def _get_cached_image_provider(model: str) -> Optional[ImageProvider]:
    """
    Get or create a cached image provider instance

    Returns None when the image provider is not configured; edits still work
    and every synthesis request is reported as failed.
    """
    key = (get_image_provider_format(), model)
    with _cache_lock:
        if key not in _image_provider_cache:
            try:
                _image_provider_cache[key] = get_image_provider(model=model)
                logger.info(f"Created new ImageProvider for model: {model}")
            except ValueError as e:
                logger.warning(f"Image provider not available, image generation disabled: {e}")
                return None
        else:
            logger.debug(f"Reusing cached ImageProvider for model: {model}")
        return _image_provider_cache[key]


def get_editing_service(force_new: bool = False) -> WorksheetEditingService:
    """
    Get the app-wide WorksheetEditingService

    Args:
        force_new: If True, forces creation of a new instance

    Returns:
        WorksheetEditingService with cached providers
    """
    app = current_app._get_current_object()

    service = None if force_new else app.extensions.get(EXTENSION_KEY)
    if service is None:
        with _lock:
            # Double-check locking pattern
            service = None if force_new else app.extensions.get(EXTENSION_KEY)
            if service is None:
                config = app.config
                text_model = config.get('TEXT_MODEL')
                image_model = config.get('IMAGE_MODEL')

                service = WorksheetEditingService(
                    text_provider=_get_cached_text_provider(text_model),
                    image_provider=_get_cached_image_provider(image_model),
                    retry_policy=RetryPolicy(
                        max_attempts=config.get('IMAGE_MAX_ATTEMPTS', 3),
                        delay_unit=config.get('IMAGE_RETRY_DELAY', 1.0),
                    ),
                    size_limits={
                        'size_step': config.get('IMAGE_SIZE_STEP', 16),
                        'min_size': config.get('IMAGE_MIN_SIZE', 256),
                        'max_size': config.get('IMAGE_MAX_SIZE', 2048),
                    },
                )
                app.extensions[EXTENSION_KEY] = service
                logger.info(f"WorksheetEditingService created with models: text={text_model}, image={image_model}")

    return service


def clear_editing_service_cache():
    """
    Drop the app's editing service and the provider cache

    Useful when API keys, endpoints or models change.
    """
    with _lock:
        current_app.extensions.pop(EXTENSION_KEY, None)
        logger.info("WorksheetEditingService cache cleared")
        with _cache_lock:
            _text_provider_cache.clear()
            _image_provider_cache.clear()
            logger.info("Provider cache cleared")


def get_provider_cache_info() -> dict:
    """
    Get information about cached providers (for debugging/monitoring)
    """
    with _cache_lock:
        return {
            "text_providers": [model for _, model in _text_provider_cache],
            "image_providers": [model for _, model in _image_provider_cache],
            "total_cached": len(_text_provider_cache) + len(_image_provider_cache)
        }
