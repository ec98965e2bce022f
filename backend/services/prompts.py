"""
AI Service Prompts - 集中管理工作表编辑的 prompt 模板
"""
import json
import logging
from typing import Any, Dict

from models.worksheet import EditContext

logger = logging.getLogger(__name__)


# 语言配置映射
LANGUAGE_CONFIG = {
    'en': {'name': 'English'},
    'uk': {'name': 'Ukrainian'},
    'zh': {'name': 'Chinese'},
    'ja': {'name': 'Japanese'},
    'de': {'name': 'German'},
    'fr': {'name': 'French'},
    'es': {'name': 'Spanish'},
}


# 各年龄段的教学建议，未知年龄段按 8-9 处理
AGE_GROUP_GUIDELINES = {
    '3-5': {
        'reading_level': 'pre-reading / early reading',
        'attention_span': 5,
        'complexity': 'very-simple',
        'visual_importance': 'critical',
        'exercise_types': ['image-placeholder', 'true-false', 'multiple-choice'],
        'text_length': {'title': '2-4 words', 'instruction': '5-8 words', 'body': '10-15 words', 'question': '5-8 words'},
    },
    '6-7': {
        'reading_level': 'early reader',
        'attention_span': 10,
        'complexity': 'simple',
        'visual_importance': 'high',
        'exercise_types': ['fill-blank', 'multiple-choice', 'true-false', 'image-placeholder'],
        'text_length': {'title': '3-5 words', 'instruction': '8-12 words', 'body': '20-30 words', 'question': '8-12 words'},
    },
    '8-9': {
        'reading_level': 'developing reader',
        'attention_span': 15,
        'complexity': 'moderate',
        'visual_importance': 'medium',
        'exercise_types': ['fill-blank', 'multiple-choice', 'short-answer', 'table'],
        'text_length': {'title': '3-6 words', 'instruction': '10-15 words', 'body': '40-60 words', 'question': '10-15 words'},
    },
    '10-11': {
        'reading_level': 'fluent reader',
        'attention_span': 20,
        'complexity': 'moderate',
        'visual_importance': 'medium',
        'exercise_types': ['fill-blank', 'short-answer', 'table', 'multiple-choice'],
        'text_length': {'title': '3-7 words', 'instruction': '12-18 words', 'body': '60-100 words', 'question': '12-18 words'},
    },
    '12-13': {
        'reading_level': 'advanced reader',
        'attention_span': 25,
        'complexity': 'complex',
        'visual_importance': 'low',
        'exercise_types': ['short-answer', 'fill-blank', 'table', 'multiple-choice'],
        'text_length': {'title': '4-8 words', 'instruction': '15-25 words', 'body': '100-150 words', 'question': '15-25 words'},
    },
}


IMAGE_MARKER_RULES = """\
**IMAGES:**
Embedded images are shown as markers instead of image data, for example:
<!-- IMAGE_METADATA: "a red ball" ID: "IMG_META_1700000000000_0" WIDTH: 640 HEIGHT: 480 -->
- To KEEP an image unchanged, copy its marker exactly as it is (same ID).
- To REPLACE an image, put a new marker in its place with an English prompt:
  <!-- IMAGE_PROMPT: "detailed English description" WIDTH: 640 HEIGHT: 480 -->
- To REMOVE an image, leave its marker out.
- Never invent IMAGE_METADATA IDs and never write image data yourself."""


def get_language_name(language: str = None) -> str:
    config = LANGUAGE_CONFIG.get(language or 'en')
    return config['name'] if config else (language or 'English')


def get_age_group_guidelines(age_group: str) -> Dict[str, Any]:
    return AGE_GROUP_GUIDELINES.get(age_group, AGE_GROUP_GUIDELINES['8-9'])


def _context_block(context: EditContext, include_language: bool = True) -> str:
    lines = [
        "**WORKSHEET CONTEXT:**",
        f"- Topic: {context.topic}",
        f"- Age Group: {context.age_group}",
        f"- Difficulty: {context.difficulty}",
    ]
    if include_language:
        lines.append(f"- Content Language: {get_language_name(context.language)}")
    return '\n'.join(lines)


def _as_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def get_image_component_edit_prompt(encoded_unit: Dict[str, Any], instruction: str, context: EditContext) -> str:
    """
    图片组件编辑 prompt：生成新的 imagePrompt

    Args:
        encoded_unit: 已替换图片标记的组件数据
        instruction: 用户编辑指令
        context: 工作表上下文

    Returns:
        格式化后的 prompt 字符串
    """
    language = get_language_name(context.language)
    prompt = f"""\
You are a worksheet editor AI assistant. Your task is to analyze the user's instruction for editing an image component and generate a NEW image prompt.

**CURRENT IMAGE COMPONENT:**
```json
{_as_json(encoded_unit)}
```

**USER INSTRUCTION:** {instruction}

{_context_block(context, include_language=False)}

**YOUR TASK:**
Analyze the user's instruction and generate a NEW image prompt that:
1. Reflects the requested changes
2. Is appropriate for age group {context.age_group}
3. Fits the worksheet topic "{context.topic}"
4. Is in English (for image generation)
5. Is descriptive and clear

Do NOT include the "url" property when the image must change; it is generated from "imagePrompt".
If the instruction does not require a new picture (for example only the caption changes), leave "imagePrompt" out.

**RETURN FORMAT - JSON ONLY:**
{{
  "patch": {{
    "properties": {{
      "imagePrompt": "NEW detailed English image prompt here",
      "caption": "Updated caption in {language} if needed"
    }}
  }},
  "changes": [
    {{
      "field": "imagePrompt",
      "oldValue": "old prompt",
      "newValue": "new prompt",
      "description": "Brief description in {language}"
    }}
  ]
}}

Return ONLY valid JSON. Be specific and descriptive in the image prompt."""
    logger.debug(f"[get_image_component_edit_prompt] Final prompt:\n{prompt}")
    return prompt


def get_component_edit_prompt(encoded_unit: Dict[str, Any], instruction: str, context: EditContext) -> str:
    """
    普通组件编辑 prompt：只返回变化的属性
    """
    component_type = encoded_unit.get('type', 'unknown')
    language = get_language_name(context.language)
    prompt = f"""\
You are a worksheet editor AI assistant. Your task is to edit a worksheet component based on the user's instruction.

**COMPONENT TYPE:** {component_type}
**CURRENT DATA:**
```json
{_as_json(encoded_unit)}
```

**USER INSTRUCTION:** {instruction}

{_context_block(context)}

{IMAGE_MARKER_RULES}

**IMPORTANT RULES:**
1. Return ONLY the changed fields in the "patch" object
2. Keep content age-appropriate for {context.age_group}
3. Maintain educational value and clarity
4. Preserve the component structure and type
5. For text fields, use {language} language
6. For image prompts, use English language
7. Be concise and focused on the specific instruction

**RETURN FORMAT - JSON ONLY (no markdown, no code blocks):**
{{
  "patch": {{
    "properties": {{ "<changed property>": "<new value>" }}
  }},
  "changes": [
    {{
      "field": "property_name",
      "oldValue": "previous value",
      "newValue": "new value",
      "description": "Brief description of what changed in {language}"
    }}
  ]
}}

Return ONLY valid JSON. No explanations, no markdown formatting."""
    logger.debug(f"[get_component_edit_prompt] Final prompt:\n{prompt}")
    return prompt


def get_page_edit_prompt(encoded_unit: Dict[str, Any], instruction: str, context: EditContext) -> str:
    """
    整页编辑 prompt：返回完整的 elements 数组
    """
    language = get_language_name(context.language)
    guidelines = get_age_group_guidelines(context.age_group)
    text_length = guidelines['text_length']
    prompt = f"""\
You are a worksheet editor AI assistant. Your task is to edit an entire worksheet page based on the user's instruction.

**PAGE DATA:**
```json
{_as_json(encoded_unit)}
```

**USER INSTRUCTION:** {instruction}

{_context_block(context)}

**AGE GROUP GUIDELINES FOR {context.age_group}:**
- Reading Level: {guidelines['reading_level']}
- Attention Span: ~{guidelines['attention_span']} minutes
- Complexity: {guidelines['complexity']}
- Visual Importance: {guidelines['visual_importance']}
- Recommended Exercise Types: {', '.join(guidelines['exercise_types'])}

**TEXT LENGTH GUIDELINES:**
- Title: {text_length['title']}
- Instructions: {text_length['instruction']}
- Body Text: {text_length['body']}
- Questions: {text_length['question']}

{IMAGE_MARKER_RULES}

**IMPORTANT RULES:**
1. You can add, modify, or remove components
2. Return the COMPLETE updated elements array
3. Maintain visual balance and educational flow
4. Keep content age-appropriate for {context.age_group} (reading level: {guidelines['reading_level']})
5. Follow text length guidelines for age group
6. Each element must have: id, type, position, size, properties, zIndex, locked, visible
7. Generate new IDs for new elements: "element-{{timestamp}}-{{random}}"
8. For a NEW image element use type "image-placeholder" with an English "imagePrompt" and no "url"
9. For text content, use {language} language
10. For image prompts, use English language

**RETURN FORMAT - JSON ONLY (no markdown, no code blocks):**
{{
  "patch": {{
    "title": "Updated page title (optional)",
    "elements": [ "<COMPLETE array of all elements (modified, added, and existing)>" ]
  }},
  "changes": [
    {{
      "field": "elements",
      "oldValue": "summary of old state",
      "newValue": "summary of new state",
      "description": "Detailed description of what changed in {language}"
    }}
  ]
}}

Return ONLY valid JSON. No explanations, no markdown formatting."""
    logger.debug(f"[get_page_edit_prompt] Final prompt length: {len(prompt)}")
    return prompt
