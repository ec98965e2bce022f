"""
Google GenAI SDK implementation for text generation

Supports two modes:
- Google AI Studio: Uses API key authentication
- Vertex AI: Uses GCP service account authentication
"""
import logging
from google import genai
from google.genai import types
from tenacity import retry, stop_after_attempt, wait_exponential
from .base import TextProvider
from config import get_config

logger = logging.getLogger(__name__)


class GenAITextProvider(TextProvider):
    """Text generation using Google GenAI SDK (supports both AI Studio and Vertex AI)"""

    def __init__(
        self,
        api_key: str = None,
        api_base: str = None,
        model: str = "gemini-2.5-flash",
        vertexai: bool = False,
        project_id: str = None,
        location: str = None,
        temperature: float = 0.7
    ):
        """
        Initialize GenAI text provider

        Args:
            api_key: Google API key (for AI Studio mode)
            api_base: API base URL (for proxies like aihubmix, AI Studio mode only)
            model: Model name to use
            vertexai: If True, use Vertex AI instead of AI Studio
            project_id: GCP project ID (required for Vertex AI mode)
            location: GCP region (for Vertex AI mode, default: us-central1)
            temperature: Sampling temperature
        """
        super().__init__(temperature=temperature)
        timeout_ms = int(get_config().GENAI_TIMEOUT * 1000)

        if vertexai:
            # Vertex AI mode - uses service account credentials from GOOGLE_APPLICATION_CREDENTIALS
            logger.info(f"Initializing GenAI text provider in Vertex AI mode, project: {project_id}, location: {location}")
            self.client = genai.Client(
                vertexai=True,
                project=project_id,
                location=location or 'us-central1',
                http_options=types.HttpOptions(timeout=timeout_ms)
            )
        else:
            # AI Studio mode - uses API key
            if not api_key:
                raise ValueError("api_key is required for Google AI Studio mode")

            http_options = types.HttpOptions(
                base_url=api_base,
                timeout=timeout_ms
            ) if api_base else types.HttpOptions(timeout=timeout_ms)

            self.client = genai.Client(
                http_options=http_options,
                api_key=api_key
            )

        self.model = model

    @retry(
        stop=stop_after_attempt(get_config().GENAI_MAX_RETRIES + 1),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    def generate_text(self, prompt: str, max_output_tokens: int = 4096, json_mode: bool = True) -> str:
        """
        Generate text using Google GenAI SDK

        Args:
            prompt: The input prompt
            max_output_tokens: Upper bound on generated tokens
            json_mode: Request application/json output

        Returns:
            Generated text
        """
        config_params = {
            'temperature': self.temperature,
            'max_output_tokens': max_output_tokens,
        }
        if json_mode:
            config_params['response_mime_type'] = 'application/json'

        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(**config_params),
        )

        # 报告 tokens 使用量
        if hasattr(response, 'usage_metadata') and response.usage_metadata:
            total_tokens = getattr(response.usage_metadata, 'total_token_count', 0)
            if total_tokens:
                self._report_usage(total_tokens)

        return response.text or ''
