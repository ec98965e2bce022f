"""
Abstract base class for image generation providers
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class SynthesizedImage:
    """One generated image; ``payload`` is base64 without the data: prefix"""
    payload: str
    width: int
    height: int
    mime_type: str = 'image/png'


class ImageProviderError(Exception):
    """Raised when the image API rejects or fails a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        if self.status_code:
            return f"{self.message} (status {self.status_code})"
        return self.message


class ImageProvider(ABC):
    """Abstract base class for image generation"""

    @abstractmethod
    def generate_image(self, prompt: str, width: int, height: int) -> SynthesizedImage:
        """
        Generate one image

        Args:
            prompt: The image generation prompt (already normalized)
            width: Target width in pixels
            height: Target height in pixels

        Returns:
            SynthesizedImage

        Raises:
            ImageProviderError: on any failure; retry is the caller's concern
        """
        pass
