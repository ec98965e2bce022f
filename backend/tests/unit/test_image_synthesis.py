"""
Tests for ImageSynthesisOrchestrator, retry policy and request normalization
"""
import base64

from conftest import FakeImageProvider
from models import Component, ComponentPatch, ImageSynthesisRequest, ImageSynthesisResult, PagePatch
from services.image_synthesis import (
    ImageSynthesisOrchestrator,
    RetryPolicy,
    enhance_prompt,
    normalize_dimensions,
)


def _orchestrator(provider, sleeps=None, max_attempts=3):
    sleeps = sleeps if sleeps is not None else []
    return ImageSynthesisOrchestrator(
        provider,
        retry_policy=RetryPolicy(max_attempts=max_attempts, delay_unit=1.0),
        sleep=sleeps.append,
    )


class TestRetryPolicy:
    def test_linear_delay(self):
        policy = RetryPolicy(max_attempts=3, delay_unit=1.0)
        assert [policy.delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]
        assert RetryPolicy(delay_unit=0.5).delay(2) == 1.0


class TestNormalization:
    def test_rounds_to_multiple_of_16(self):
        assert normalize_dimensions(500, 300) == (496, 304)
        assert normalize_dimensions(520, 520) == (528, 528)

    def test_clamps(self):
        assert normalize_dimensions(100, 5000) == (256, 2048)

    def test_bad_values_use_default(self):
        assert normalize_dimensions(None, 'abc') == (512, 512)

    def test_enhance_prompt_adds_qualifiers(self):
        assert enhance_prompt('a blue cat') == (
            'a blue cat, educational content, child-friendly, professional digital art, vibrant colors'
        )

    def test_enhance_prompt_is_idempotent(self):
        once = enhance_prompt('a blue cat')
        assert enhance_prompt(once) == once

    def test_existing_safety_term_suppresses_educational_qualifiers(self):
        assert enhance_prompt('a cat, safe for children, vibrant colors') == (
            'a cat, safe for children, vibrant colors, professional digital art'
        )


class TestCollectRequests:
    def test_component_with_prompt_and_no_url(self):
        patch = ComponentPatch(properties={'imagePrompt': 'a blue cat', 'width': 512, 'height': 512})
        requests = _orchestrator(FakeImageProvider()).collect_requests(patch, 'component', element_id='img-1')

        assert [r.to_dict() for r in requests] == [
            {'id': 'component-img-1', 'prompt': 'a blue cat', 'width': 512, 'height': 512}
        ]

    def test_component_with_url_is_skipped(self):
        patch = ComponentPatch(properties={'imagePrompt': 'a blue cat', 'url': 'data:image/png;base64,AAAA'})
        assert _orchestrator(FakeImageProvider()).collect_requests(patch, 'component', element_id='img-1') == []

    def test_page_collects_image_placeholders_only(self):
        patch = PagePatch(elements=[
            Component(id='t1', type='body-text', properties={'imagePrompt': 'ignored'}),
            Component(id='i1', type='image-placeholder', properties={'imagePrompt': 'a tree'}),
            Component(id='i2', type='image-placeholder', properties={'imagePrompt': 'a bird', 'url': 'X'}),
            Component(id='i3', type='image-placeholder', properties={'imagePrompt': 'a fish', 'width': 300, 'height': 200}),
        ])
        requests = _orchestrator(FakeImageProvider()).collect_requests(patch, 'page')

        assert [(r.id, r.prompt, r.width, r.height) for r in requests] == [
            ('1-i1', 'a tree', 512, 512),
            ('3-i3', 'a fish', 300, 200),
        ]


class TestGenerate:
    def test_success_applies_url_and_keeps_prompt(self):
        provider = FakeImageProvider()
        orchestrator = _orchestrator(provider)
        patch = ComponentPatch(properties={'imagePrompt': 'a blue cat', 'width': 512, 'height': 512})

        requests = orchestrator.collect_requests(patch, 'component', element_id='img-1')
        results = orchestrator.generate(requests)
        updated = orchestrator.apply_results(patch, 'component', results)

        assert len(provider.calls) == 1
        prompt, width, height = provider.calls[0]
        assert prompt.startswith('a blue cat, educational content')
        assert (width, height) == (512, 512)
        assert results[0].success and results[0].attempts == 1
        assert updated.properties['url'].startswith('data:image/png;base64,')
        assert base64.b64decode(updated.properties['url'].split(',', 1)[1]).decode() == f'img:{prompt}'
        assert updated.properties['imagePrompt'] == 'a blue cat'
        assert 'url' not in patch.properties

    def test_always_failing_provider_called_exactly_three_times(self):
        provider = FakeImageProvider(fail_when='cat')
        sleeps = []
        results = _orchestrator(provider, sleeps).generate([ImageSynthesisRequest('r1', 'a cat')])

        assert len(provider.calls) == 3
        assert sleeps == [1.0, 2.0]
        assert results[0].success is False
        assert results[0].attempts == 3
        assert 'boom' in results[0].error

    def test_flaky_provider_recovers(self):
        provider = FakeImageProvider(fail_times=2)
        results = _orchestrator(provider).generate([ImageSynthesisRequest('r1', 'a dog')])

        assert results[0].success is True
        assert results[0].attempts == 3

    def test_partial_failure_keeps_order_and_does_not_raise(self):
        provider = FakeImageProvider(fail_when='broken')
        requests = [
            ImageSynthesisRequest('ok', 'a sunny hill'),
            ImageSynthesisRequest('bad', 'a broken robot'),
        ]

        results = _orchestrator(provider).generate(requests)

        assert [r.id for r in results] == ['ok', 'bad']
        assert [r.success for r in results] == [True, False]
        assert ImageSynthesisOrchestrator.failure_messages(results) == ['bad: boom (status 500)']

    def test_empty_request_list(self):
        assert _orchestrator(FakeImageProvider()).generate([]) == []

    def test_missing_provider_fails_each_request(self):
        results = _orchestrator(None).generate([ImageSynthesisRequest('r1', 'a cat')])
        assert results[0].success is False
        assert 'not configured' in results[0].error


class TestApplyResults:
    def test_page_results_applied_by_index_and_id(self):
        patch = PagePatch(elements=[
            Component(id='i0', type='image-placeholder', properties={'imagePrompt': 'a'}),
            Component(id='i1', type='image-placeholder', properties={'imagePrompt': 'b'}),
        ])
        results = [
            ImageSynthesisResult.succeeded('0-i0', 'QUFB', 512, 512),
            ImageSynthesisResult.succeeded('1-other', 'QkJC', 512, 512),
            ImageSynthesisResult.failed('1-i1', 'boom'),
            ImageSynthesisResult.succeeded('IMG_NEW_0', 'Q0ND', 512, 512),
        ]

        updated = _orchestrator(FakeImageProvider()).apply_results(patch, 'page', results)

        assert updated.elements[0].properties['url'] == 'data:image/png;base64,QUFB'
        assert 'url' not in updated.elements[1].properties
        assert 'url' not in patch.elements[0].properties

    def test_component_uses_first_success(self):
        patch = ComponentPatch(properties={'imagePrompt': 'a'})
        results = [
            ImageSynthesisResult.failed('component-x', 'boom'),
            ImageSynthesisResult.succeeded('component-x', 'QUFB', 512, 512, mime_type='image/jpeg'),
        ]
        updated = _orchestrator(FakeImageProvider()).apply_results(patch, 'component', results)
        assert updated.properties['url'] == 'data:image/jpeg;base64,QUFB'
