"""
Shared pytest fixtures: Flask app/client and fake AI providers
"""
import base64
import json
import os
import threading
from io import BytesIO

import pytest
from PIL import Image

os.environ.setdefault('FLASK_ENV', 'testing')

from services.ai_providers.image import ImageProvider, ImageProviderError, SynthesizedImage
from services.ai_providers.text import TextProvider
from services.image_metadata_codec import KEEP_MARKER_RE


class FakeTextProvider(TextProvider):
    """Returns a fixed text, or ``response(prompt)`` when callable"""

    def __init__(self, response=None, error=None, total_tokens=123):
        super().__init__()
        self.response = response
        self.error = error
        self.total_tokens = total_tokens
        self.calls = []

    def generate_text(self, prompt, max_output_tokens=4096, json_mode=True):
        self.calls.append({'prompt': prompt, 'max_output_tokens': max_output_tokens, 'json_mode': json_mode})
        if self.error is not None:
            raise self.error
        self._report_usage(self.total_tokens)
        return self.response(prompt) if callable(self.response) else self.response


class FakeImageProvider(ImageProvider):
    """
    Thread-safe fake image API

    Prompts containing ``fail_when`` always fail; every prompt fails its
    first ``fail_times`` calls.
    """

    def __init__(self, fail_when=None, fail_times=0):
        self.fail_when = fail_when
        self.fail_times = fail_times
        self.calls = []
        self._lock = threading.Lock()

    def generate_image(self, prompt, width, height):
        with self._lock:
            self.calls.append((prompt, width, height))
            call_count = sum(1 for call in self.calls if call[0] == prompt)
        if self.fail_when and self.fail_when in prompt:
            raise ImageProviderError('boom', status_code=500)
        if call_count <= self.fail_times:
            raise ImageProviderError('temporarily unavailable', status_code=503)
        payload = base64.b64encode(f'img:{prompt}'.encode('utf-8')).decode('utf-8')
        return SynthesizedImage(payload=payload, width=width, height=height, mime_type='image/png')


def prompt_markers(prompt):
    """Keep markers of the encoded unit embedded in a prompt, unescaped"""
    return [
        json.loads(f'"{match.group(0)}"')
        for match in KEEP_MARKER_RE.finditer(prompt)
        if match.group('kq') == '\\"'
    ]


def png_base64(width=8, height=8, color=(255, 0, 0)):
    buffered = BytesIO()
    Image.new('RGB', (width, height), color).save(buffered, format='PNG')
    return base64.b64encode(buffered.getvalue()).decode('utf-8')


@pytest.fixture
def app():
    from app import create_app
    from config import TestingConfig

    flask_app = create_app(config_class=TestingConfig)
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def image_provider():
    return FakeImageProvider()


@pytest.fixture
def context_dict():
    return {'topic': 'Dinosaurs', 'ageGroup': '6-7', 'difficulty': 'easy', 'language': 'en', 'userId': 'user-1'}
