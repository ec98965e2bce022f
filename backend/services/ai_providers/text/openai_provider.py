"""
OpenAI SDK implementation for text generation
"""
import logging
from openai import OpenAI
from .base import TextProvider
from config import get_config

logger = logging.getLogger(__name__)


class OpenAITextProvider(TextProvider):
    """Text generation using OpenAI SDK (compatible with Gemini via proxy)"""

    def __init__(self, api_key: str, api_base: str = None, model: str = "gpt-4o-mini",
                 temperature: float = 0.7):
        """
        Initialize OpenAI text provider

        Args:
            api_key: API key
            api_base: API base URL (e.g., https://aihubmix.com/v1)
            model: Model name to use
            temperature: Sampling temperature
        """
        super().__init__(temperature=temperature)
        self.client = OpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=get_config().OPENAI_TIMEOUT,  # set timeout from config
            max_retries=get_config().OPENAI_MAX_RETRIES  # set max retries from config
        )
        self.model = model

    def generate_text(self, prompt: str, max_output_tokens: int = 4096, json_mode: bool = True) -> str:
        """
        Generate text using OpenAI SDK

        Args:
            prompt: The input prompt
            max_output_tokens: Upper bound on generated tokens
            json_mode: Request a JSON object response

        Returns:
            Generated text
        """
        kwargs = {}
        if json_mode:
            kwargs['response_format'] = {"type": "json_object"}

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "user", "content": prompt}
            ],
            temperature=self.temperature,
            max_tokens=max_output_tokens,
            **kwargs
        )

        # 报告 tokens 使用量
        if response.usage:
            self._report_usage(response.usage.total_tokens)

        return response.choices[0].message.content or ''
