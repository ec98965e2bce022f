"""
Tests for patch merging: images are never silently dropped
"""
import copy

import pytest

from models import Component, ComponentPatch, Page, PagePatch, PatchFormatError
from services.patch_merger import (
    carry_over_unchanged_images,
    merge,
    merge_component,
    merge_page,
)


def _page():
    return Page(
        page_id='page-1',
        title='Toys',
        elements=[
            Component(id='text-1', type='body-text', properties={'text': 'Old text'},
                      extra={'position': {'x': 0, 'y': 0}}),
            Component(id='img-1', type='image-placeholder',
                      properties={'url': 'PAYLOAD_A', 'imagePrompt': 'a red ball', 'width': 300, 'height': 200},
                      extra={'position': {'x': 0, 'y': 100}}),
        ],
    )


class TestMergeComponent:
    def test_shallow_override(self):
        original = {'text': 'a', 'style': {'bold': True, 'size': 12}, 'color': 'red'}
        merged = merge_component(original, {'text': 'b', 'style': {'italic': True}})

        assert merged == {'text': 'b', 'style': {'italic': True}, 'color': 'red'}
        assert original['style'] == {'bold': True, 'size': 12}

    def test_missing_patch_properties(self):
        assert merge_component({'url': 'X'}, None) == {'url': 'X'}
        assert merge_component(None, {'text': 'b'}) == {'text': 'b'}

    def test_merge_component_keeps_url_when_patch_omits_it(self):
        component = Component(id='img-1', type='image-placeholder', properties={'url': 'X', 'caption': 'old'})
        merged = merge(component, ComponentPatch(properties={'caption': 'new'}))

        assert merged.properties == {'url': 'X', 'caption': 'new'}
        assert component.properties['caption'] == 'old'

    def test_merge_component_empty_url_never_replaces_image(self):
        component = Component(id='img-1', type='image-placeholder', properties={'url': 'X', 'imagePrompt': 'a cat'})
        merged = merge(component, ComponentPatch(properties={'url': '', 'imagePrompt': 'a dog'}))

        assert merged.properties == {'url': 'X', 'imagePrompt': 'a dog'}

    def test_image_helpers(self):
        image = Component(id='img-1', type='image-placeholder', properties={'url': ''})
        text = Component(id='text-1', type='body-text', properties={'url': 'X'})

        assert image.is_image is True
        assert image.url is None
        assert text.is_image is False
        assert text.url == 'X'


class TestMergePage:
    def test_text_change_keeps_image_untouched(self):
        page = _page()
        patch = PagePatch(elements=[
            Component(id='text-1', type='body-text', properties={'text': 'New text'}),
            Component(id='img-1', type='image-placeholder',
                      properties={'imagePrompt': 'a red ball', 'width': 300, 'height': 200},
                      extra={'position': {'x': 0, 'y': 100}}),
        ])

        merged = merge_page(page, patch)

        assert merged.find_element('text-1').properties['text'] == 'New text'
        assert merged.find_element('img-1').to_dict() == page.find_element('img-1').to_dict()

    def test_empty_url_in_patch_is_restored(self):
        patch = PagePatch(elements=[Component(id='img-1', type='image-placeholder', properties={'url': ''})])
        merged = merge_page(_page(), patch)
        assert merged.find_element('img-1').properties['url'] == 'PAYLOAD_A'

    def test_elements_undefined_leaves_elements_alone(self):
        page = _page()
        merged = merge_page(page, PagePatch(title='Balls'))

        assert merged.title == 'Balls'
        assert [el.to_dict() for el in merged.elements] == [el.to_dict() for el in page.elements]

    def test_patch_decides_membership_and_order(self):
        patch = PagePatch(elements=[
            Component(id='new-1', type='body-text', properties={'text': 'Added'}),
            Component(id='img-1', type='image-placeholder', properties={'imagePrompt': 'a red ball'}),
        ])

        merged = merge_page(_page(), patch)

        assert [el.id for el in merged.elements] == ['new-1', 'img-1']
        assert merged.find_element('text-1') is None
        assert merged.find_element('img-1').properties['url'] == 'PAYLOAD_A'

    def test_inputs_not_mutated(self):
        page = _page()
        patch = PagePatch(elements=[Component(id='img-1', type='image-placeholder', properties={})])
        before_page, before_patch = copy.deepcopy(page.to_dict()), copy.deepcopy(patch.to_dict())

        merge_page(page, patch)

        assert page.to_dict() == before_page
        assert patch.to_dict() == before_patch

    def test_mismatched_patch_raises(self):
        with pytest.raises(PatchFormatError):
            merge(_page(), ComponentPatch(properties={}))
        with pytest.raises(PatchFormatError):
            merge(Component(id='a', type='x'), PagePatch(title='t'))


class TestCarryOver:
    def test_unchanged_prompt_gets_original_url(self):
        patch = PagePatch(elements=[
            Component(id='img-1', type='image-placeholder', properties={'imagePrompt': 'a red ball'}),
        ])
        result = carry_over_unchanged_images(_page(), patch)

        assert result.elements[0].properties['url'] == 'PAYLOAD_A'
        assert 'url' not in patch.elements[0].properties

    def test_changed_prompt_is_not_carried(self):
        patch = PagePatch(elements=[
            Component(id='img-1', type='image-placeholder', properties={'imagePrompt': 'a blue ball'}),
        ])
        result = carry_over_unchanged_images(_page(), patch)
        assert 'url' not in result.elements[0].properties

    def test_released_element_is_not_carried(self):
        patch = PagePatch(elements=[
            Component(id='img-1', type='image-placeholder', properties={'imagePrompt': 'a red ball'}),
        ])
        result = carry_over_unchanged_images(_page(), patch, released_ids={'img-1'})
        assert 'url' not in result.elements[0].properties

    def test_component_patch(self):
        component = Component(id='img-1', type='image-placeholder',
                              properties={'url': 'PAYLOAD_A', 'imagePrompt': 'a red ball'})

        kept = carry_over_unchanged_images(component, ComponentPatch(properties={'caption': 'Ball'}))
        changed = carry_over_unchanged_images(component, ComponentPatch(properties={'imagePrompt': 'a cube'}))

        assert kept.properties['url'] == 'PAYLOAD_A'
        assert 'url' not in changed.properties
