"""
Data validation utilities
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from models.worksheet import (
    DIFFICULTIES,
    UNIT_COMPONENT,
    UNIT_TYPES,
    EditContext,
    EditTarget,
    PatchFormatError,
    unit_from_dict,
)


class ValidationError(ValueError):
    """Edit request rejected before any I/O; the message is shown to the caller"""


@dataclass
class EditRequest:
    target: EditTarget
    instruction: str
    context: EditContext


def _validate_target(raw: Any) -> EditTarget:
    if not isinstance(raw, dict):
        raise ValidationError('Invalid edit target: missing type or pageId')

    # 旧版前端使用 type 字段
    unit_type = raw.get('unitType') or raw.get('type')
    page_id = raw.get('pageId')
    if not unit_type or not page_id:
        raise ValidationError('Invalid edit target: missing type or pageId')
    if unit_type not in UNIT_TYPES:
        raise ValidationError(f"Invalid edit target: unknown type '{unit_type}'")

    element_id = raw.get('elementId')
    if unit_type == UNIT_COMPONENT and not element_id:
        raise ValidationError('Invalid edit target: elementId required for component type')

    data = raw.get('data')
    if not isinstance(data, dict):
        raise ValidationError('Invalid edit target: missing data')

    try:
        unit = unit_from_dict(unit_type, data, page_id=str(page_id))
    except PatchFormatError as e:
        raise ValidationError(f'Invalid edit target data: {e}') from e

    if unit_type == UNIT_COMPONENT and unit.id != element_id:
        raise ValidationError('Invalid edit target: elementId does not match data.id')

    return EditTarget(
        unit_type=unit_type,
        page_id=str(page_id),
        data=unit,
        element_id=str(element_id) if element_id else None,
    )


def _validate_context(raw: Any) -> EditContext:
    if not isinstance(raw, dict) or not raw.get('topic') or not raw.get('ageGroup'):
        raise ValidationError('Invalid context: missing required fields')
    context = EditContext.from_dict(raw)
    if context.difficulty not in DIFFICULTIES:
        raise ValidationError(f"Invalid context: difficulty must be one of {', '.join(DIFFICULTIES)}")
    return context


def validate_edit_request(data: Optional[Dict[str, Any]]) -> EditRequest:
    """
    Validate a raw ``{editTarget, instruction, context}`` payload

    Raises:
        ValidationError: with the message to surface verbatim
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    target = _validate_target(data.get('editTarget'))

    instruction = data.get('instruction')
    if not isinstance(instruction, str) or not instruction.strip():
        raise ValidationError('Instruction cannot be empty')

    context = _validate_context(data.get('context'))
    return EditRequest(target=target, instruction=instruction.strip(), context=context)


def validate_thumbnail_units(data: Any) -> Dict[str, Any]:
    """``{units: [{id, content}]}`` -> ``{id: content}``"""
    units = data.get('units') if isinstance(data, dict) else None
    if not isinstance(units, list) or not units:
        raise ValidationError('units must be a non-empty list')

    result = {}
    for item in units:
        if not isinstance(item, dict) or not item.get('id') or 'content' not in item:
            raise ValidationError('Each unit requires id and content')
        result[str(item['id'])] = item['content']
    return result


def split_unit_request(data: Any) -> Tuple[Any, bool]:
    """``{content, force?}`` -> (content, force)"""
    if not isinstance(data, dict) or 'content' not in data:
        raise ValidationError('content is required')
    return data['content'], bool(data.get('force', False))
