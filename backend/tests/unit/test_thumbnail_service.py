"""
Tests for ThumbnailCacheService and the Pillow renderer
"""
import base64
import threading
from io import BytesIO

import pytest
from PIL import Image

from conftest import png_base64
from services.thumbnail_service import PillowThumbnailRenderer, ThumbnailCacheService, ThumbnailRenderer

FALLBACK = 'data:image/png;base64,FALLBACK'


class CountingRenderer(ThumbnailRenderer):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def render(self, content):
        self.calls.append(content)
        if self.fail:
            raise RuntimeError('render failed')
        return f'data:image/jpeg;base64,{len(self.calls)}'


class BlockingRenderer(ThumbnailRenderer):
    """Blocks until released so the generation stays in flight"""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def render(self, content):
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return 'data:image/jpeg;base64,DONE'


def _service(renderer):
    return ThumbnailCacheService(renderer, fallback_payload=FALLBACK)


def test_generates_once_then_hits_cache():
    renderer = CountingRenderer()
    service = _service(renderer)

    first = service.get_or_generate('page-1', {'title': 'A'})
    second = service.get_or_generate('page-1', {'title': 'B'})

    assert first == second == 'data:image/jpeg;base64,1'
    assert len(renderer.calls) == 1
    assert service.get('page-1') == first
    assert service.get_record('page-1').unit_id == 'page-1'


def test_record_timestamp_is_timezone_aware():
    service = _service(CountingRenderer())
    service.get_or_generate('page-1', {'title': 'A'})

    record = service.get_record('page-1')
    assert record.generated_at.tzinfo is not None
    assert record.to_dict()['generated_at'].endswith('+00:00')


def test_get_never_generates():
    renderer = CountingRenderer()
    service = _service(renderer)
    assert service.get('page-1') is None
    assert renderer.calls == []


def test_concurrent_request_gets_fallback_while_in_flight():
    renderer = BlockingRenderer()
    service = _service(renderer)
    results = {}

    worker = threading.Thread(target=lambda: results.update(first=service.get_or_generate('page-1', 'x')))
    worker.start()
    assert renderer.started.wait(timeout=5)

    assert service.is_generating('page-1')
    assert service.get_or_generate('page-1', 'x') == FALLBACK
    assert service.regenerate('page-1', 'x') == FALLBACK

    renderer.release.set()
    worker.join(timeout=5)

    assert results['first'] == 'data:image/jpeg;base64,DONE'
    assert renderer.calls == 1
    assert not service.is_generating('page-1')


def test_failure_returns_fallback_and_caches_nothing():
    renderer = CountingRenderer(fail=True)
    service = _service(renderer)

    assert service.get_or_generate('page-1', 'x') == FALLBACK
    assert service.get('page-1') is None
    assert not service.is_generating('page-1')

    renderer.fail = False
    assert service.get_or_generate('page-1', 'x') == 'data:image/jpeg;base64,2'


def test_regenerate_replaces_cached_entry():
    renderer = CountingRenderer()
    service = _service(renderer)

    service.get_or_generate('page-1', 'x')
    assert service.regenerate('page-1', 'y') == 'data:image/jpeg;base64,2'
    assert service.get('page-1') == 'data:image/jpeg;base64,2'


def test_invalidate_and_clear():
    service = _service(CountingRenderer())
    service.get_or_generate('page-1', 'x')
    service.get_or_generate('page-2', 'x')

    assert service.invalidate('page-1') is True
    assert service.invalidate('page-1') is False
    assert service.get('page-1') is None

    service.clear()
    assert service.get('page-2') is None


def test_batch_returns_successes_only():
    class SelectiveRenderer(ThumbnailRenderer):
        def render(self, content):
            if content == 'bad':
                raise ValueError('cannot render')
            return f'data:image/jpeg;base64,{content}'

    service = _service(SelectiveRenderer())
    results = service.batch_generate({'a': 'AAAA', 'b': 'bad', 'c': 'CCCC'})

    assert results == {'a': 'data:image/jpeg;base64,AAAA', 'c': 'data:image/jpeg;base64,CCCC'}
    assert service.get('b') is None
    assert service.batch_generate({}) == {}


class TestPillowRenderer:
    @pytest.mark.parametrize('content', [
        {'title': 'Dinosaurs', 'elements': [
            {'id': 't1', 'type': 'title-block', 'position': {'x': 40, 'y': 40}, 'zIndex': 1,
             'properties': {'text': '<b>Meet</b> the dinosaurs'}},
            {'id': 'i1', 'type': 'image-placeholder', 'position': {'x': 40, 'y': 120},
             'size': {'width': 200, 'height': 150},
             'properties': {'url': f'data:image/png;base64,{png_base64()}'}},
            {'id': 'h1', 'type': 'body-text', 'visible': False, 'properties': {'text': 'hidden'}},
        ]},
        '{"id": "c1", "type": "body-text", "properties": {"text": "Hello"}}',
        'just some text',
    ])
    def test_renders_jpeg_thumbnail(self, content):
        payload = PillowThumbnailRenderer().render(content)

        assert payload.startswith('data:image/jpeg;base64,')
        image = Image.open(BytesIO(base64.b64decode(payload.split(',', 1)[1])))
        assert image.format == 'JPEG'
        assert image.size == (320, 453)

    def test_broken_image_payload_is_drawn_as_box(self):
        content = {'elements': [{'id': 'i1', 'type': 'image-placeholder',
                                 'properties': {'url': 'data:image/png;base64,AAAA', 'imagePrompt': 'a cat'}}]}
        assert PillowThumbnailRenderer().render(content).startswith('data:image/jpeg;base64,')
