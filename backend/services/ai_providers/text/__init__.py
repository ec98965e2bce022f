"""Text generation providers"""
from .base import TextProvider
from .genai_provider import GenAITextProvider
from .openai_provider import OpenAITextProvider

__all__ = ['TextProvider', 'GenAITextProvider', 'OpenAITextProvider']
