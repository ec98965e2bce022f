"""
Unified JSON response helpers

Success: {"success": true, "data": ..., "message": ...}
Error:   {"success": false, "error": {"code": ..., "message": ...}}
"""
from typing import Any, Optional
from flask import jsonify


def success_response(data: Any = None, message: Optional[str] = None, status_code: int = 200):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    return jsonify(body), status_code


def error_response(error_code: str, message: str, status_code: int = 400):
    return jsonify({
        'success': False,
        'error': {
            'code': error_code,
            'message': message,
        },
    }), status_code


def bad_request(message: str):
    return error_response('INVALID_REQUEST', message, 400)


def validation_error(message: str):
    return error_response('VALIDATION_ERROR', message, 400)


def not_found(resource: str):
    return error_response(f'{resource.upper().replace(" ", "_")}_NOT_FOUND', f'{resource} not found', 404)


def ai_service_error(message: str):
    return error_response('AI_SERVICE_ERROR', message, 502)
