"""
OpenAI SDK implementation for image generation
"""
import base64
import logging
from io import BytesIO
from typing import Optional

import requests
from openai import OpenAI
from PIL import Image

from .base import ImageProvider, ImageProviderError, SynthesizedImage
from config import get_config

logger = logging.getLogger(__name__)

# OpenAI 兼容接口只接受这几种尺寸
SUPPORTED_SIZES = ((1024, 1024), (1536, 1024), (1024, 1536))


def _closest_size(width: int, height: int) -> str:
    ratio = width / height if height else 1.0
    best = min(SUPPORTED_SIZES, key=lambda size: abs(size[0] / size[1] - ratio))
    return f"{best[0]}x{best[1]}"


def _download_as_base64(url: str, timeout: float) -> Optional[str]:
    """Fallback for proxies that ignore response_format and return a url"""
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return base64.b64encode(response.content).decode('utf-8')


class OpenAIImageProvider(ImageProvider):
    """Image generation using OpenAI SDK (compatible with Gemini via proxy)"""

    def __init__(self, api_key: str, api_base: str = None, model: str = "gpt-image-1"):
        """
        Initialize OpenAI image provider

        Args:
            api_key: API key
            api_base: API base URL (e.g., https://aihubmix.com/v1)
            model: Model name to use
        """
        self.client = OpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=get_config().IMAGE_TIMEOUT,
            max_retries=0  # 重试由 ImageSynthesisOrchestrator 负责
        )
        self.model = model

    def generate_image(self, prompt: str, width: int, height: int) -> SynthesizedImage:
        size = _closest_size(width, height)
        logger.debug(f"Calling OpenAI images API: model={self.model}, requested={width}x{height}, size={size}")
        try:
            response = self.client.images.generate(
                model=self.model,
                prompt=prompt,
                size=size,
                n=1,
                response_format='b64_json',
            )
        except Exception as e:
            status_code = getattr(e, 'status_code', None)
            raise ImageProviderError(
                f"Error generating image with OpenAI (model={self.model}): {type(e).__name__}: {e}",
                status_code=status_code,
            ) from e

        if not response.data:
            raise ImageProviderError("No image data received from OpenAI API")

        item = response.data[0]
        payload = getattr(item, 'b64_json', None)
        if not payload and getattr(item, 'url', None):
            try:
                payload = _download_as_base64(item.url, get_config().IMAGE_TIMEOUT)
            except requests.RequestException as e:
                raise ImageProviderError(f"Failed to download generated image: {e}") from e
        if not payload:
            raise ImageProviderError("OpenAI API response contained neither b64_json nor url")

        try:
            image = Image.open(BytesIO(base64.b64decode(payload)))
            actual_width, actual_height = image.size
            mime_type = Image.MIME.get(image.format, 'image/png')
        except Exception as e:
            raise ImageProviderError(f"OpenAI API returned an unreadable image: {e}") from e

        return SynthesizedImage(payload=payload, width=actual_width, height=actual_height, mime_type=mime_type)
