"""
Integration tests - HTTP edit and thumbnail flows through the Flask app
"""
import json

import pytest

from conftest import FakeImageProvider, FakeTextProvider, png_base64, prompt_markers
from services.ai_service_manager import EXTENSION_KEY
from services.image_metadata_codec import new_image_marker
from services.image_synthesis import RetryPolicy
from services.worksheet_editing_service import WorksheetEditingService

PNG_URL = f'data:image/png;base64,{png_base64()}'


def _install_service(app, response, image_provider=None):
    text_provider = FakeTextProvider(response=response)
    app.extensions[EXTENSION_KEY] = WorksheetEditingService(
        text_provider=text_provider,
        image_provider=image_provider or FakeImageProvider(),
        retry_policy=RetryPolicy(delay_unit=0),
    )
    return text_provider


def _page_body(context_dict, instruction='Rename the title'):
    return {
        'editTarget': {
            'unitType': 'page',
            'pageId': 'page-1',
            'data': {
                'pageId': 'page-1',
                'title': 'Toys',
                'elements': [
                    {'id': 'img-1', 'type': 'image-placeholder', 'position': {'x': 0, 'y': 100},
                     'properties': {'url': PNG_URL, 'imagePrompt': 'a red ball', 'width': 300, 'height': 200}},
                ],
            },
        },
        'instruction': instruction,
        'context': context_dict,
    }


class TestEditEndpoint:
    def test_page_edit_success(self, app, client, context_dict):
        def respond(prompt):
            marker = prompt_markers(prompt)[0]
            return json.dumps({
                'patch': {'title': 'Balls and toys', 'elements': [
                    {'id': 'img-1', 'type': 'image-placeholder', 'position': {'x': 0, 'y': 100},
                     'properties': {'url': marker, 'imagePrompt': 'a red ball', 'width': 300, 'height': 200}},
                    {'id': 'img-2', 'type': 'image-placeholder',
                     'properties': {'url': new_image_marker('a yellow kite', 256, 256)}},
                ]},
                'changes': [{'field': 'title', 'oldValue': 'Toys', 'newValue': 'Balls and toys',
                             'description': 'Renamed the title'}],
            })

        image_provider = FakeImageProvider()
        _install_service(app, respond, image_provider)

        response = client.post('/api/worksheets/edit', json=_page_body(context_dict))

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        data = body['data']
        assert data['summary'] == '• Renamed the title'
        assert data['patch']['title'] == 'Balls and toys'
        assert data['imageErrors'] == []
        assert data['stats']['keptImages'] == 1
        assert data['stats']['generatedImages'] == 1

        merged = data['mergedUnit']
        assert merged['elements'][0]['properties']['url'] == PNG_URL
        new_image = merged['elements'][1]['properties']
        assert new_image['imagePrompt'] == 'a yellow kite'
        assert new_image['url'].startswith('data:image/png;base64,')
        assert len(image_provider.calls) == 1

    def test_image_failure_is_reported_not_fatal(self, app, client, context_dict):
        response_text = json.dumps({'patch': {'elements': [
            {'id': 'img-1', 'type': 'image-placeholder', 'properties': {'imagePrompt': 'a broken kite'}},
        ]}})
        _install_service(app, response_text, FakeImageProvider(fail_when='broken'))

        response = client.post('/api/worksheets/edit', json=_page_body(context_dict))

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['imageErrors'] == ['0-img-1: boom (status 500)']
        assert data['summary'] == 'Changes applied'
        assert data['mergedUnit']['elements'][0]['properties']['url'] == PNG_URL

    @pytest.mark.parametrize('mutate, message', [
        (lambda body: body.update(instruction=''), 'Instruction cannot be empty'),
        (lambda body: body['editTarget'].pop('pageId'), 'Invalid edit target: missing type or pageId'),
        (lambda body: body.update(context={'topic': 'Toys'}), 'Invalid context: missing required fields'),
    ])
    def test_validation_errors(self, app, client, context_dict, mutate, message):
        text_provider = _install_service(app, '{"patch": {}}')
        body = _page_body(context_dict)
        mutate(body)

        response = client.post('/api/worksheets/edit', json=body)

        assert response.status_code == 400
        error = response.get_json()['error']
        assert error['code'] == 'VALIDATION_ERROR'
        assert error['message'] == message
        assert text_provider.calls == []

    def test_non_json_body(self, client):
        response = client.post('/api/worksheets/edit', data='not json', content_type='text/plain')
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_unparseable_model_output(self, app, client, context_dict):
        _install_service(app, 'no json here')

        response = client.post('/api/worksheets/edit', json=_page_body(context_dict))

        assert response.status_code == 502
        error = response.get_json()['error']
        assert error['code'] == 'AI_SERVICE_ERROR'
        assert error['message'] == 'No JSON object found in AI response'


class TestThumbnailEndpoints:
    def test_lifecycle(self, client):
        assert client.get('/api/thumbnails/page-1').status_code == 404

        content = {'title': 'Toys', 'elements': [
            {'id': 't1', 'type': 'body-text', 'properties': {'text': 'Hello'}},
        ]}
        response = client.post('/api/thumbnails/page-1', json={'content': content})
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['unit_id'] == 'page-1'
        assert data['fallback'] is False
        assert data['payload'].startswith('data:image/jpeg;base64,')

        cached = client.get('/api/thumbnails/page-1').get_json()['data']
        assert cached['payload'] == data['payload']

        forced = client.post('/api/thumbnails/page-1', json={'content': 'other', 'force': True})
        assert forced.get_json()['data']['payload'] != data['payload']

        assert client.delete('/api/thumbnails/page-1').get_json()['data']['removed'] is True
        assert client.delete('/api/thumbnails/page-1').get_json()['data']['removed'] is False
        assert client.get('/api/thumbnails/page-1').status_code == 404

    def test_post_requires_content(self, client):
        response = client.post('/api/thumbnails/page-1', json={})
        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'content is required'

    def test_batch(self, client):
        response = client.post('/api/thumbnails/batch', json={'units': [
            {'id': 'p1', 'content': 'first page'},
            {'id': 'p2', 'content': {'title': 'Second', 'elements': []}},
        ]})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert set(data['thumbnails']) == {'p1', 'p2'}
        assert data['requested'] == data['generated'] == 2

    def test_batch_validation(self, client):
        response = client.post('/api/thumbnails/batch', json={'units': []})
        assert response.status_code == 400


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'
