"""
Together AI (FLUX) implementation for image generation
"""
import logging
import random
import requests
from .base import ImageProvider, ImageProviderError, SynthesizedImage
from config import get_config

logger = logging.getLogger(__name__)

FLUX_SCHNELL_MODEL = 'black-forest-labs/FLUX.1-schnell'


class TogetherImageProvider(ImageProvider):
    """Image generation using the Together images API (FLUX.1 schnell by default)"""

    def __init__(self, api_key: str, api_base: str = None, model: str = FLUX_SCHNELL_MODEL,
                 steps: int = 4, guidance_scale: float = 3.5, timeout: float = None):
        """
        Initialize Together image provider

        Args:
            api_key: Together API key
            api_base: API base URL (default https://api.together.xyz/v1)
            model: Model name to use
            steps: Diffusion steps (schnell is tuned for 1-4)
            guidance_scale: Prompt guidance
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("api_key is required for Together image generation")
        self.api_key = api_key
        self.api_base = (api_base or 'https://api.together.xyz/v1').rstrip('/')
        self.model = model
        self.steps = steps
        self.guidance_scale = guidance_scale
        self.timeout = timeout if timeout is not None else get_config().IMAGE_TIMEOUT
        self.session = requests.Session()

    def generate_image(self, prompt: str, width: int, height: int) -> SynthesizedImage:
        payload = {
            'model': self.model,
            'prompt': prompt,
            'width': width,
            'height': height,
            'steps': self.steps,
            'n': 1,
            'response_format': 'b64_json',
            'guidance_scale': self.guidance_scale,
            'seed': random.randint(0, 999_999),
        }

        logger.debug(f"Calling Together API: model={self.model}, size={width}x{height}")
        try:
            response = self.session.post(
                f"{self.api_base}/images/generations",
                json=payload,
                headers={
                    'Authorization': f'Bearer {self.api_key}',
                    'Content-Type': 'application/json',
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ImageProviderError(f"Together API request failed: {type(e).__name__}: {e}") from e

        if not response.ok:
            raise ImageProviderError(
                f"Together API error: {response.reason} - {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ImageProviderError("Together API returned a non-JSON body", response.status_code) from e

        items = data.get('data') or []
        b64_json = items[0].get('b64_json') if items else None
        if not b64_json:
            raise ImageProviderError("No image data received from Together API", response.status_code)

        return SynthesizedImage(payload=b64_json, width=width, height=height, mime_type='image/png')
