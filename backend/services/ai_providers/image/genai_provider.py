"""
Google GenAI SDK implementation for image generation

Supports two modes:
- Google AI Studio: Uses API key authentication
- Vertex AI: Uses GCP service account authentication
"""
import base64
import logging
from io import BytesIO
from google import genai
from google.genai import types
from PIL import Image
from .base import ImageProvider, ImageProviderError, SynthesizedImage
from config import get_config

logger = logging.getLogger(__name__)

ASPECT_RATIOS = {
    '1:1': 1.0,
    '4:3': 4 / 3,
    '3:4': 3 / 4,
    '16:9': 16 / 9,
    '9:16': 9 / 16,
    '3:2': 3 / 2,
    '2:3': 2 / 3,
}


def nearest_aspect_ratio(width: int, height: int) -> str:
    """Gemini 只支持固定比例，选最接近的一个"""
    ratio = width / height if height else 1.0
    return min(ASPECT_RATIOS, key=lambda name: abs(ASPECT_RATIOS[name] - ratio))


class GenAIImageProvider(ImageProvider):
    """Image generation using Google GenAI SDK (supports both AI Studio and Vertex AI)"""

    def __init__(
        self,
        api_key: str = None,
        api_base: str = None,
        model: str = "gemini-2.5-flash-image",
        vertexai: bool = False,
        project_id: str = None,
        location: str = None
    ):
        """
        Initialize GenAI image provider

        Args:
            api_key: Google API key (for AI Studio mode)
            api_base: API base URL (for proxies like aihubmix, AI Studio mode only)
            model: Model name to use
            vertexai: If True, use Vertex AI instead of AI Studio
            project_id: GCP project ID (required for Vertex AI mode)
            location: GCP region (for Vertex AI mode, default: us-central1)
        """
        timeout_ms = int(get_config().IMAGE_TIMEOUT * 1000)

        if vertexai:
            logger.info(f"Initializing GenAI image provider in Vertex AI mode, project: {project_id}, location: {location}")
            self.client = genai.Client(
                vertexai=True,
                project=project_id,
                location=location or 'us-central1',
                http_options=types.HttpOptions(timeout=timeout_ms)
            )
        else:
            http_options = types.HttpOptions(
                base_url=api_base,
                timeout=timeout_ms
            ) if api_base else types.HttpOptions(timeout=timeout_ms)

            self.client = genai.Client(
                http_options=http_options,
                api_key=api_key
            )

        self.model = model

    def generate_image(self, prompt: str, width: int, height: int) -> SynthesizedImage:
        aspect_ratio = nearest_aspect_ratio(width, height)
        logger.debug(f"Calling GenAI API for image generation, aspect_ratio: {aspect_ratio}")
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[prompt],
                config=types.GenerateContentConfig(
                    response_modalities=['TEXT', 'IMAGE'],
                    image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                ),
            )
        except Exception as e:
            raise ImageProviderError(
                f"Error generating image with GenAI: {type(e).__name__}: {e}",
                status_code=getattr(e, 'code', None),
            ) from e

        # 取最后一张图片（前面的可能是低分辨率草图）
        last_image = None
        for i, part in enumerate(response.parts or []):
            if part.text is not None:
                logger.debug(f"Part {i}: TEXT - {part.text[:100]}")
                continue
            if part.inline_data is not None and part.inline_data.data:
                last_image = Image.open(BytesIO(part.inline_data.data))

        if last_image is None:
            raise ImageProviderError("No image found in GenAI API response")

        buffered = BytesIO()
        last_image.save(buffered, format='PNG')
        actual_width, actual_height = last_image.size
        return SynthesizedImage(
            payload=base64.b64encode(buffered.getvalue()).decode('utf-8'),
            width=actual_width,
            height=actual_height,
            mime_type='image/png',
        )
