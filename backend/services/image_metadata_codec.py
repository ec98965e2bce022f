"""
Image Metadata Codec - hides base64 image payloads from the edit model

流程:
1. 编辑前把 base64 图片替换为文本标记（prompt / id / 尺寸），不带任何图片字节
2. 模型原样保留标记 = 保留图片；换成 IMAGE_PROMPT 标记 = 需要新图片
3. 对保留的标记还原原始 base64，其余的交给图片生成

Marker shapes::

    <!-- IMAGE_METADATA: "<prompt>" ID: "<id>" WIDTH: <w> HEIGHT: <h> -->
    <!-- IMAGE_PROMPT: "<prompt>" WIDTH: <w> HEIGHT: <h> -->

When the encoded unit is serialized to JSON the quotes inside a marker become
``\\"``; both forms are recognised and restoration writes the original markup
back with the same escaping.
"""
import json
import logging
import re
import time
from typing import Any, Dict, Optional, Tuple

from models.image_generation import (
    DEFAULT_PLACEHOLDER_HEIGHT,
    DEFAULT_PLACEHOLDER_WIDTH,
    EncodedUnit,
    ImageIntent,
    ImagePlaceholderRecord,
    ImageSynthesisRequest,
    ImageSynthesisResult,
    ReleasedImages,
)

logger = logging.getLogger(__name__)

# 提示词中允许 JSON 转义（如 ensure_ascii 产生的 \u0434），但不能吞掉结尾的 \"
_PROMPT = r'(?:[^"\\]|\\[^"\\])*'

_KEEP_PATTERN = (
    rf'<!--\s*IMAGE_METADATA:\s*(?P<kq>\\?")(?P<kprompt>{_PROMPT})(?P=kq)\s*'
    r'ID:\s*(?P=kq)(?P<kid>[^"\\]+)(?P=kq)\s*'
    r'WIDTH:\s*(?P<kw>\d+)\s*HEIGHT:\s*(?P<kh>\d+)\s*-->'
)
_NEW_PATTERN = (
    rf'<!--\s*IMAGE_PROMPT:\s*(?P<nq>\\?")(?P<nprompt>{_PROMPT})(?P=nq)\s*'
    r'WIDTH:\s*(?P<nw>\d+)\s*HEIGHT:\s*(?P<nh>\d+)\s*-->'
)

KEEP_MARKER_RE = re.compile(_KEEP_PATTERN)
MARKER_RE = re.compile(f'(?:{_KEEP_PATTERN})|(?:{_NEW_PATTERN})')

DATA_URL_RE = re.compile(r'^data:(?P<mime>image/[A-Za-z0-9.+-]+);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$')
IMG_TAG_RE = re.compile(
    r'<img\b[^>]*?\bsrc=(["\'])data:image/[^;"\']+;base64,[^"\']+\1[^>]*>',
    re.IGNORECASE,
)
_TAG_SRC_RE = re.compile(r'\bsrc=(["\'])data:image/[^;"\']+;base64,([^"\']+)\1', re.IGNORECASE)
_PENDING_TAG_RE = re.compile(r'<img data-image-request-id="(?P<id>IMG_NEW_\d+)"')

NEW_REQUEST_PREFIX = 'IMG_NEW_'


def _tag_attribute(tag: str, name: str) -> Optional[str]:
    match = re.search(rf'\b{name}=(["\'])(.*?)\1', tag, re.IGNORECASE)
    if match:
        return match.group(2)
    # width=640 这种不带引号的写法
    match = re.search(rf'\b{name}=(\d+)', tag, re.IGNORECASE)
    return match.group(1) if match else None


def _as_size(value: Any, default: int) -> int:
    try:
        size = int(float(value))
    except (TypeError, ValueError):
        return default
    return size if size > 0 else default


def _clean_prompt(prompt: str) -> str:
    """Make a prompt safe to embed between the marker's double quotes"""
    cleaned = str(prompt).replace('"', "'").replace('\\', '').replace('-->', '->')
    cleaned = ' '.join(cleaned.split())
    return cleaned or 'image'


def metadata_marker(prompt: str, placeholder_id: str, width: int, height: int) -> str:
    return f'<!-- IMAGE_METADATA: "{_clean_prompt(prompt)}" ID: "{placeholder_id}" WIDTH: {width} HEIGHT: {height} -->'


def new_image_marker(prompt: str, width: int, height: int) -> str:
    return f'<!-- IMAGE_PROMPT: "{_clean_prompt(prompt)}" WIDTH: {width} HEIGHT: {height} -->'


def is_data_url(value: Any) -> bool:
    return isinstance(value, str) and DATA_URL_RE.match(value) is not None


def is_marker(value: Any) -> bool:
    """True when ``value`` is nothing but a single image marker"""
    return isinstance(value, str) and MARKER_RE.fullmatch(value.strip()) is not None


def _unescape_prompt(prompt: Optional[str]) -> str:
    """Marker prompts read from raw JSON text may still carry escapes like ``\\u0434``"""
    if prompt and '\\' in prompt:
        try:
            prompt = json.loads(f'"{prompt}"')
        except ValueError:
            pass
    return prompt or 'image'


def _marker_fields(match: re.Match) -> Tuple[bool, Optional[str], str, int, int]:
    """(is_keep_marker, id, prompt, width, height) of a MARKER_RE match"""
    if match.group('kid') is not None:
        return (
            True,
            match.group('kid'),
            _unescape_prompt(match.group('kprompt')),
            _as_size(match.group('kw'), DEFAULT_PLACEHOLDER_WIDTH),
            _as_size(match.group('kh'), DEFAULT_PLACEHOLDER_HEIGHT),
        )
    return (
        False,
        None,
        _unescape_prompt(match.group('nprompt')),
        _as_size(match.group('nw'), DEFAULT_PLACEHOLDER_WIDTH),
        _as_size(match.group('nh'), DEFAULT_PLACEHOLDER_HEIGHT),
    )


class ImageMetadataCodec:
    """
    Text/metadata transform around one Edit Proposer round trip.

    One codec instance per edit request. It never calls the image API and
    keeps no state besides the id stamp of the current ``encode`` call; the
    placeholder map it returns is owned by the caller.
    """

    def __init__(self, id_prefix: str = 'IMG_META'):
        self.id_prefix = id_prefix

    # ------------------------------------------------------------------
    # encode
    # ------------------------------------------------------------------
    def encode(self, unit: Any) -> EncodedUnit:
        """
        Replace every embedded image payload in ``unit`` with a metadata marker

        Args:
            unit: Component / Page dataclass or its dict form; not modified

        Returns:
            EncodedUnit with the encoded dict and the placeholder map
        """
        data = unit.to_dict() if hasattr(unit, 'to_dict') else unit
        placeholders: Dict[str, ImagePlaceholderRecord] = {}
        stamp = int(time.time() * 1000)

        encoded = self._encode_value(data, placeholders, stamp)

        saved_bytes = 0
        for record in placeholders.values():
            marker = metadata_marker(record.prompt, record.id, record.width, record.height)
            saved_bytes += len(record.source_markup) - len(marker)

        if placeholders:
            logger.info(
                f"🔄 [IMAGE_METADATA] Replaced {len(placeholders)} image(s) with metadata, "
                f"saved {saved_bytes} bytes (~{max(saved_bytes, 0) // 4} tokens)"
            )
        return EncodedUnit(encoded_unit=encoded, placeholders=placeholders, saved_bytes=saved_bytes)

    def _next_id(self, placeholders: Dict[str, ImagePlaceholderRecord], stamp: int) -> str:
        return f"{self.id_prefix}_{stamp}_{len(placeholders)}"

    def _encode_value(self, value: Any, placeholders: Dict[str, ImagePlaceholderRecord], stamp: int) -> Any:
        if isinstance(value, dict):
            encoded = {}
            for key, item in value.items():
                if key == 'url' and is_data_url(item):
                    record = self._record_from_properties(value, item, self._next_id(placeholders, stamp))
                    placeholders[record.id] = record
                    encoded[key] = metadata_marker(record.prompt, record.id, record.width, record.height)
                else:
                    encoded[key] = self._encode_value(item, placeholders, stamp)
            return encoded
        if isinstance(value, list):
            return [self._encode_value(item, placeholders, stamp) for item in value]
        if isinstance(value, str) and '<img' in value.lower():
            def replace_tag(match: re.Match) -> str:
                record = self._record_from_tag(match.group(0), self._next_id(placeholders, stamp))
                if record is None:
                    return match.group(0)
                placeholders[record.id] = record
                return metadata_marker(record.prompt, record.id, record.width, record.height)

            return IMG_TAG_RE.sub(replace_tag, value)
        return value

    @staticmethod
    def _record_from_properties(properties: Dict[str, Any], url: str, placeholder_id: str) -> ImagePlaceholderRecord:
        match = DATA_URL_RE.match(url)
        prompt = properties.get('imagePrompt') or properties.get('caption') or properties.get('alt') or 'image'
        return ImagePlaceholderRecord(
            id=placeholder_id,
            original_payload=match.group('payload') if match else '',
            prompt=str(prompt),
            width=_as_size(properties.get('width'), DEFAULT_PLACEHOLDER_WIDTH),
            height=_as_size(properties.get('height'), DEFAULT_PLACEHOLDER_HEIGHT),
            source_markup=url,
            alt=properties.get('alt') or properties.get('caption'),
        )

    @staticmethod
    def _record_from_tag(tag: str, placeholder_id: str) -> Optional[ImagePlaceholderRecord]:
        src_match = _TAG_SRC_RE.search(tag)
        if not src_match:
            return None
        alt = _tag_attribute(tag, 'alt')
        prompt = _tag_attribute(tag, 'data-image-prompt') or alt or 'image'
        return ImagePlaceholderRecord(
            id=placeholder_id,
            original_payload=src_match.group(2),
            prompt=prompt,
            width=_as_size(_tag_attribute(tag, 'width'), DEFAULT_PLACEHOLDER_WIDTH),
            height=_as_size(_tag_attribute(tag, 'height'), DEFAULT_PLACEHOLDER_HEIGHT),
            source_markup=tag,
            alt=alt,
        )

    # ------------------------------------------------------------------
    # decode / restore
    # ------------------------------------------------------------------
    def decode(self, text: str, placeholders: Dict[str, ImagePlaceholderRecord]) -> ImageIntent:
        """
        Work out which images the Edit Proposer kept and which it wants new

        A keep marker with an unknown id is not an error: it is reported as a
        new request so the image gets regenerated instead of failing the edit.
        """
        intent = ImageIntent()
        for match in MARKER_RE.finditer(text or ''):
            is_keep, marker_id, prompt, width, height = _marker_fields(match)
            if is_keep and marker_id in placeholders:
                intent.keep_ids.add(marker_id)
                continue
            if is_keep:
                logger.warning(f"⚠️ [IMAGE_INTENT] Unknown image id {marker_id}, image will be regenerated")
            request_id = f"{NEW_REQUEST_PREFIX}{len(intent.new_requests)}"
            intent.new_requests.append(
                ImageSynthesisRequest(id=request_id, prompt=prompt, width=width, height=height)
            )

        logger.info(
            f"🎯 [IMAGE_INTENT] keep={len(intent.keep_ids)}, new={len(intent.new_requests)}, "
            f"dropped={len(set(placeholders) - intent.keep_ids)}"
        )
        return intent

    def restore(self, text: str, placeholders: Dict[str, ImagePlaceholderRecord]) -> str:
        """Put the original markup back for every keep marker with a known id"""
        restored = 0
        missing = 0

        def replace(match: re.Match) -> str:
            nonlocal restored, missing
            record = placeholders.get(match.group('kid'))
            if record is None:
                missing += 1
                return match.group(0)
            restored += 1
            if match.group('kq') == '\\"':
                # 标记位于 JSON 字符串内部，写回时同样需要转义
                return json.dumps(record.source_markup, ensure_ascii=False)[1:-1]
            return record.source_markup

        result = KEEP_MARKER_RE.sub(replace, text or '')
        if restored:
            logger.info(f"✅ [IMAGE_RESTORE] {restored} image(s) kept without regeneration")
        if missing:
            logger.warning(f"⚠️ [IMAGE_RESTORE] {missing} marker(s) reference unknown ids and were left as-is")
        return result

    # ------------------------------------------------------------------
    # unresolved markers
    # ------------------------------------------------------------------
    def release_unresolved(self, data: Any, owner_id: Optional[str] = None,
                           placeholders: Optional[Dict[str, ImagePlaceholderRecord]] = None
                           ) -> Tuple[Any, ReleasedImages]:
        """
        Turn markers still present after ``restore`` into pending synthesis work

        ``data`` is the parsed (untyped) patch. Markers are numbered in the
        same textual order ``decode`` uses, so ``IMG_NEW_<k>`` ids agree.
        A leftover keep marker whose id is in ``placeholders`` gets its
        original markup back instead of being regenerated.

        Returns:
            (new data, ReleasedImages); ``data`` itself is not modified
        """
        released = ReleasedImages()
        counters = {'new': 0, 'restored': 0}
        result = self._release_value(data, owner_id, placeholders or {}, released, counters)
        if counters['restored']:
            logger.info(f"✅ [IMAGE_RELEASE] {counters['restored']} leftover marker(s) restored to the original image")
        if released.released_ids or released.embedded_requests:
            logger.info(
                f"[IMAGE_RELEASE] {len(released.released_ids)} url marker(s) released to imagePrompt, "
                f"{len(released.embedded_requests)} embedded image(s) pending"
            )
        return result, released

    def _release_value(self, value: Any, owner_id: Optional[str],
                       placeholders: Dict[str, ImagePlaceholderRecord],
                       released: ReleasedImages, counters: Dict[str, int]) -> Any:
        if isinstance(value, dict):
            owner = owner_id
            if isinstance(value.get('id'), str) and 'properties' in value:
                owner = value['id']
            result = {}
            pending = None
            for key, item in value.items():
                if key == 'url' and is_marker(item):
                    fields = _marker_fields(MARKER_RE.fullmatch(item.strip()))
                    record = placeholders.get(fields[1]) if fields[0] else None
                    if record is not None:
                        result[key] = record.source_markup
                        counters['restored'] += 1
                        continue
                    pending = fields
                    counters['new'] += 1
                    continue
                result[key] = self._release_value(item, owner, placeholders, released, counters)
            if pending is not None:
                is_keep, _, prompt, width, height = pending
                if not is_keep or not result.get('imagePrompt'):
                    result['imagePrompt'] = prompt
                result.setdefault('width', width)
                result.setdefault('height', height)
                released.released_ids.add(owner or '')
            return result
        if isinstance(value, list):
            return [self._release_value(item, owner_id, placeholders, released, counters) for item in value]
        if isinstance(value, str) and '<!--' in value:
            def replace(match: re.Match) -> str:
                is_keep, marker_id, prompt, width, height = _marker_fields(match)
                record = placeholders.get(marker_id) if is_keep else None
                if record is not None:
                    counters['restored'] += 1
                    return record.source_markup
                request_id = f"{NEW_REQUEST_PREFIX}{counters['new']}"
                counters['new'] += 1
                released.embedded_requests.append(
                    ImageSynthesisRequest(id=request_id, prompt=prompt, width=width, height=height)
                )
                safe_prompt = _clean_prompt(prompt)
                return (
                    f'<img data-image-request-id="{request_id}" data-image-prompt="{safe_prompt}" '
                    f'alt="{safe_prompt}" width="{width}" height="{height}">'
                )

            return MARKER_RE.sub(replace, value)
        return value

    def fill_embedded(self, value: Any, results: Dict[str, ImageSynthesisResult]) -> Any:
        """Give pending ``<img data-image-request-id>`` tags the synthesized source"""
        if isinstance(value, dict):
            return {key: self.fill_embedded(item, results) for key, item in value.items()}
        if isinstance(value, list):
            return [self.fill_embedded(item, results) for item in value]
        if isinstance(value, str) and 'data-image-request-id' in value:
            def replace(match: re.Match) -> str:
                result = results.get(match.group('id'))
                if result is None or not result.success:
                    return match.group(0)
                return f'<img src="{result.data_url}"'

            return _PENDING_TAG_RE.sub(replace, value)
        return value
