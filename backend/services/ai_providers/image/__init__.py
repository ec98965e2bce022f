"""Image generation providers"""
from .base import ImageProvider, ImageProviderError, SynthesizedImage
from .genai_provider import GenAIImageProvider
from .openai_provider import OpenAIImageProvider
from .together_provider import TogetherImageProvider

__all__ = [
    'ImageProvider',
    'ImageProviderError',
    'SynthesizedImage',
    'GenAIImageProvider',
    'OpenAIImageProvider',
    'TogetherImageProvider',
]
