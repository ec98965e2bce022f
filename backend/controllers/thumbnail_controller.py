"""
Thumbnail Controller - cached page/component previews
"""
import logging
from flask import Blueprint, request, current_app
from utils import (
    ValidationError,
    error_response,
    not_found,
    split_unit_request,
    success_response,
    validate_thumbnail_units,
    validation_error,
)

logger = logging.getLogger(__name__)

thumbnail_bp = Blueprint('thumbnails', __name__, url_prefix='/api/thumbnails')


def _service():
    return current_app.extensions['thumbnail_service']


@thumbnail_bp.route('/batch', methods=['POST'])
def batch_thumbnails():
    """
    POST /api/thumbnails/batch - Generate many thumbnails

    Request body:
    {
        "units": [{"id": "page-1", "content": {...}}]
    }
    """
    try:
        units = validate_thumbnail_units(request.get_json(silent=True))
    except ValidationError as e:
        return validation_error(str(e))

    try:
        thumbnails = _service().batch_generate(units)
        return success_response({
            'thumbnails': thumbnails,
            'requested': len(units),
            'generated': len(thumbnails),
        })
    except Exception as e:
        logger.error(f"Error generating thumbnails: {str(e)}", exc_info=True)
        return error_response('SERVER_ERROR', str(e), 500)


@thumbnail_bp.route('/<unit_id>', methods=['GET'])
def get_thumbnail(unit_id):
    """
    GET /api/thumbnails/{unit_id} - Cached thumbnail, never generates
    """
    record = _service().get_record(unit_id)
    if record is None:
        return not_found('Thumbnail')
    return success_response(record.to_dict())


@thumbnail_bp.route('/<unit_id>', methods=['POST'])
def generate_thumbnail(unit_id):
    """
    POST /api/thumbnails/{unit_id} - Get or generate a thumbnail

    Request body:
    {
        "content": {...},
        "force": false   // true 时丢弃缓存重新生成
    }
    """
    try:
        content, force = split_unit_request(request.get_json(silent=True))
    except ValidationError as e:
        return validation_error(str(e))

    service = _service()
    payload = service.regenerate(unit_id, content) if force else service.get_or_generate(unit_id, content)
    return success_response({
        'unit_id': unit_id,
        'payload': payload,
        'fallback': payload == service.fallback_payload,
    })


@thumbnail_bp.route('/<unit_id>', methods=['DELETE'])
def invalidate_thumbnail(unit_id):
    """
    DELETE /api/thumbnails/{unit_id} - Drop the cached thumbnail
    """
    removed = _service().invalidate(unit_id)
    return success_response({'unit_id': unit_id, 'removed': removed})
