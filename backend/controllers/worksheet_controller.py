"""
Worksheet Controller - AI edit endpoint
"""
import logging
from flask import Blueprint, request
from utils import (
    ValidationError,
    ai_service_error,
    error_response,
    success_response,
    validate_edit_request,
    validation_error,
)
from services.ai_service_manager import get_editing_service
from services.worksheet_editing_service import format_changes

logger = logging.getLogger(__name__)

worksheet_bp = Blueprint('worksheets', __name__, url_prefix='/api/worksheets')


@worksheet_bp.route('/edit', methods=['POST'])
def edit_worksheet():
    """
    POST /api/worksheets/edit - Edit a component or page with AI

    Request body:
    {
        "editTarget": {"unitType": "component|page", "pageId": "...", "elementId": "...", "data": {...}},
        "instruction": "Make the title more fun",
        "context": {"topic": "Dinosaurs", "ageGroup": "6-7", "difficulty": "easy", "language": "en"}
    }
    """
    try:
        edit_request = validate_edit_request(request.get_json(silent=True))
    except ValidationError as e:
        return validation_error(str(e))

    try:
        result = get_editing_service().edit(edit_request)
    except ValueError as e:
        # 文本模型未配置（缺少 API key 等）
        logger.error(f"Editing service unavailable: {e}")
        return error_response('AI_SERVICE_UNAVAILABLE', str(e), 503)
    except Exception as e:
        logger.error(f"Error editing worksheet: {str(e)}", exc_info=True)
        return error_response('SERVER_ERROR', str(e), 500)

    if not result.success:
        return ai_service_error(result.error or 'Edit failed')

    data = result.to_dict()
    data['summary'] = format_changes(result.changes)
    return success_response(data)
