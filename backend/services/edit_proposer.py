"""
Edit Proposer - turns an instruction plus an encoded unit into a proposed patch

只负责 prompt 构建、调用文本模型和解析返回的 JSON，
图片标记的还原与生成由 WorksheetEditingService 处理。
"""
import json
import logging
import re
from typing import Any, Dict, List, Tuple

from models.worksheet import IMAGE_PLACEHOLDER_TYPE, UNIT_PAGE, EditChange, EditContext
from .ai_providers.text import TextProvider
from .prompts import get_component_edit_prompt, get_image_component_edit_prompt, get_page_edit_prompt

logger = logging.getLogger(__name__)

PAGE_MAX_TOKENS = 8192
COMPONENT_MAX_TOKENS = 4096

_CODE_FENCE_RE = re.compile(r'```(?:json)?', re.IGNORECASE)


class EditProposerError(Exception):
    """The text model failed or returned something that is not a usable edit"""


def extract_json_object(text: str) -> str:
    """Strip Markdown code fences and return the outermost ``{...}``"""
    cleaned = _CODE_FENCE_RE.sub('', text or '').strip()
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start == -1 or end <= start:
        raise EditProposerError("No JSON object found in AI response")
    return cleaned[start:end + 1]


def parse_response(text: str) -> Tuple[Dict[str, Any], List[EditChange]]:
    """
    Parse the (restored) model response

    Returns:
        (patch dict, changes); ``changes`` is empty when missing or malformed

    Raises:
        EditProposerError: no JSON object, invalid JSON or no ``patch``
    """
    try:
        parsed = json.loads(extract_json_object(text))
    except json.JSONDecodeError as e:
        raise EditProposerError(f"Failed to parse AI response: {e}") from e

    if not isinstance(parsed, dict):
        raise EditProposerError("Failed to parse AI response: top-level value is not an object")

    patch = parsed.get('patch')
    if not isinstance(patch, dict):
        raise EditProposerError("Invalid response structure: missing patch")

    raw_changes = parsed.get('changes')
    changes = []
    if isinstance(raw_changes, list):
        changes = [EditChange.from_dict(item) for item in raw_changes if isinstance(item, dict)]
    else:
        logger.warning("AI response has no valid 'changes' list, using empty list")

    properties = patch.get('properties')
    if isinstance(properties, dict) and properties.get('imagePrompt'):
        logger.info(f"🎨 [PARSE] New image prompt generated: {str(properties['imagePrompt'])[:80]}...")
    return patch, changes


class EditProposer:
    """Calls the text model for one edit"""

    def __init__(self, text_provider: TextProvider):
        self.text_provider = text_provider

    @staticmethod
    def build_prompt(encoded_unit: Dict[str, Any], instruction: str, context: EditContext, unit_type: str) -> str:
        if unit_type == UNIT_PAGE:
            return get_page_edit_prompt(encoded_unit, instruction, context)
        if encoded_unit.get('type') == IMAGE_PLACEHOLDER_TYPE:
            return get_image_component_edit_prompt(encoded_unit, instruction, context)
        return get_component_edit_prompt(encoded_unit, instruction, context)

    def propose(self, encoded_unit: Dict[str, Any], instruction: str, context: EditContext, unit_type: str) -> str:
        """
        Ask the text model for an edit

        Returns:
            Raw response text (markers still encoded)

        Raises:
            EditProposerError: the provider call failed
        """
        prompt = self.build_prompt(encoded_unit, instruction, context, unit_type)
        max_tokens = PAGE_MAX_TOKENS if unit_type == UNIT_PAGE else COMPONENT_MAX_TOKENS

        logger.info(f"🤖 Calling text model: unit_type={unit_type}, prompt_length={len(prompt)}, max_tokens={max_tokens}")
        try:
            text = self.text_provider.generate_text(prompt, max_output_tokens=max_tokens, json_mode=True)
        except Exception as e:
            logger.error(f"Text model call failed: {type(e).__name__}: {e}", exc_info=True)
            raise EditProposerError(f"AI service failed: {e}") from e

        if not text:
            raise EditProposerError("AI service returned an empty response")

        total_tokens = getattr(self.text_provider, 'last_total_tokens', 0)
        if context.user_id and total_tokens:
            logger.info(f"📊 Token usage: user={context.user_id}, total_tokens={total_tokens}, service=worksheet_edit")
        logger.info(f"✅ Text model responded: {len(text)} chars")
        return text
