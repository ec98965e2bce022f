"""Utils package"""
from .response import (
    success_response,
    error_response,
    bad_request,
    validation_error,
    not_found,
    ai_service_error,
)
from .validators import (
    ValidationError,
    EditRequest,
    validate_edit_request,
    validate_thumbnail_units,
    split_unit_request,
)

__all__ = [
    'success_response',
    'error_response',
    'bad_request',
    'validation_error',
    'not_found',
    'ai_service_error',
    'ValidationError',
    'EditRequest',
    'validate_edit_request',
    'validate_thumbnail_units',
    'split_unit_request',
]
