"""
Thumbnail cache service - one cached preview per document unit

状态: absent -> generating -> cached；强制重新生成时 cached -> generating；
生成失败时 generating -> absent。同一个 unit 同一时间最多只有一个生成任务，
其它调用方立即拿到占位图（fallback）。
"""
import base64
import json
import logging
import re
import textwrap
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from io import BytesIO
from typing import Any, Dict, Optional, Set

from PIL import Image, ImageDraw, ImageFont

from models.thumbnail import ThumbnailRecord
from .image_metadata_codec import DATA_URL_RE

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r'<[^>]+>')
TEXT_PROPERTIES = ('title', 'text', 'content', 'question', 'instructions', 'caption', 'label')


def _png_data_url(image: Image.Image) -> str:
    buffered = BytesIO()
    image.save(buffered, format='PNG')
    return f"data:image/png;base64,{base64.b64encode(buffered.getvalue()).decode('utf-8')}"


def make_fallback_payload(width: int = 320, height: int = 452) -> str:
    """Plain grey preview returned while a thumbnail is being generated"""
    image = Image.new('RGB', (width, height), (229, 231, 235))
    draw = ImageDraw.Draw(image)
    draw.rectangle([8, 8, width - 9, height - 9], outline=(209, 213, 219), width=2)
    return _png_data_url(image)


class ThumbnailRenderer(ABC):
    """Turns unit content into a thumbnail payload (data URL)"""

    @abstractmethod
    def render(self, content: Any) -> str:
        pass


class PillowThumbnailRenderer(ThumbnailRenderer):
    """
    Low-fidelity preview drawn with Pillow

    Accepts a page dict (``elements``), a component dict (``properties``), a
    JSON string of either, or plain text.
    """

    def __init__(self, canvas_width: int = 794, canvas_height: int = 1123,
                 thumbnail_width: int = 320, quality: int = 85):
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.thumbnail_width = thumbnail_width
        self.quality = quality
        self.font = ImageFont.load_default()

    def render(self, content: Any) -> str:
        data = self._parse(content)
        canvas = Image.new('RGB', (self.canvas_width, self.canvas_height), 'white')
        draw = ImageDraw.Draw(canvas)

        if isinstance(data, dict):
            self._draw_unit(canvas, draw, data)
        else:
            self._draw_text(draw, str(data or ''), (40, 40, self.canvas_width - 40, self.canvas_height - 40))

        height = max(1, round(self.canvas_height * self.thumbnail_width / self.canvas_width))
        thumbnail = canvas.resize((self.thumbnail_width, height), Image.LANCZOS)

        buffered = BytesIO()
        thumbnail.save(buffered, format='JPEG', quality=self.quality)
        return f"data:image/jpeg;base64,{base64.b64encode(buffered.getvalue()).decode('utf-8')}"

    @staticmethod
    def _parse(content: Any) -> Any:
        if isinstance(content, str):
            stripped = content.strip()
            if stripped.startswith('{'):
                try:
                    return json.loads(stripped)
                except ValueError:
                    return content
        return content

    def _draw_unit(self, canvas: Image.Image, draw: ImageDraw.ImageDraw, data: Dict[str, Any]):
        if 'elements' in data:
            elements = data.get('elements') or []
            title = data.get('title')
            if title:
                draw.text((40, 16), str(title)[:80], fill=(17, 24, 39), font=self.font)
        else:
            elements = [data]

        ordered = sorted(
            (el for el in elements if isinstance(el, dict)),
            key=lambda el: el.get('zIndex') or 0,
        )
        for element in ordered:
            if element.get('visible') is False:
                continue
            self._draw_element(canvas, draw, element)

    def _element_box(self, element: Dict[str, Any]):
        position = element.get('position') or {}
        size = element.get('size') or {}
        properties = element.get('properties') or {}
        x = int(position.get('x') or 40)
        y = int(position.get('y') or 40)
        width = int(size.get('width') or properties.get('width') or self.canvas_width - 80)
        height = int(size.get('height') or properties.get('height') or 60)
        return x, y, x + max(width, 1), y + max(height, 1)

    def _draw_element(self, canvas: Image.Image, draw: ImageDraw.ImageDraw, element: Dict[str, Any]):
        box = self._element_box(element)
        properties = element.get('properties') or {}

        url = properties.get('url')
        match = DATA_URL_RE.match(url) if isinstance(url, str) else None
        if match:
            try:
                image = Image.open(BytesIO(base64.b64decode(match.group('payload'))))
                image = image.convert('RGB').resize((box[2] - box[0], box[3] - box[1]))
                canvas.paste(image, (box[0], box[1]))
                return
            except (OSError, ValueError) as e:
                logger.warning(f"Could not draw image of element {element.get('id')}: {e}")

        draw.rectangle(box, outline=(209, 213, 219))
        texts = [str(properties[key]) for key in TEXT_PROPERTIES if properties.get(key)]
        if not texts and properties.get('imagePrompt'):
            texts = [f"[{properties['imagePrompt']}]"]
        if texts:
            self._draw_text(draw, ' '.join(texts), box)

    def _draw_text(self, draw: ImageDraw.ImageDraw, text: str, box):
        text = ' '.join(_HTML_TAG_RE.sub(' ', text).split())
        chars_per_line = max(10, (box[2] - box[0]) // 7)
        max_lines = max(1, (box[3] - box[1]) // 14)
        lines = textwrap.wrap(text, width=chars_per_line)[:max_lines]
        draw.multiline_text((box[0] + 4, box[1] + 4), '\n'.join(lines), fill=(55, 65, 81), font=self.font)


class MemoryThumbnailCache:
    """Keep-forever in-memory store; callers serialize access"""

    def __init__(self):
        self._records: Dict[str, ThumbnailRecord] = {}

    def get(self, unit_id: str) -> Optional[ThumbnailRecord]:
        return self._records.get(unit_id)

    def set(self, record: ThumbnailRecord):
        self._records[record.unit_id] = record

    def delete(self, unit_id: str) -> bool:
        return self._records.pop(unit_id, None) is not None

    def clear(self):
        self._records.clear()

    def __len__(self):
        return len(self._records)


class ThumbnailCacheService:
    """
    Thumbnail cache with per-unit generation dedup

    A single lock guards both the cache and the in-flight set, so the
    "check cache, check in-flight, mark in-flight" step is atomic.
    """

    def __init__(self, renderer: ThumbnailRenderer, cache: Optional[MemoryThumbnailCache] = None,
                 max_workers: int = 8, fallback_payload: Optional[str] = None):
        self.renderer = renderer
        self.max_workers = max_workers
        self.fallback_payload = fallback_payload or make_fallback_payload()
        self._cache = cache if cache is not None else MemoryThumbnailCache()
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def get(self, unit_id: str) -> Optional[str]:
        """Cached payload or None, never generates"""
        record = self.get_record(unit_id)
        return record.payload if record else None

    def get_record(self, unit_id: str) -> Optional[ThumbnailRecord]:
        with self._lock:
            return self._cache.get(unit_id)

    def is_generating(self, unit_id: str) -> bool:
        with self._lock:
            return unit_id in self._in_flight

    def get_or_generate(self, unit_id: str, content: Any) -> str:
        """Cached payload, fallback while in flight, otherwise generate now"""
        payload = self._generate(unit_id, content)
        return payload if payload is not None else self.fallback_payload

    def regenerate(self, unit_id: str, content: Any) -> str:
        """Drop the cached entry and generate again"""
        with self._lock:
            if unit_id in self._in_flight:
                return self.fallback_payload
            self._cache.delete(unit_id)
            self._in_flight.add(unit_id)
        payload = self._render(unit_id, content)
        return payload if payload is not None else self.fallback_payload

    def invalidate(self, unit_id: str) -> bool:
        with self._lock:
            removed = self._cache.delete(unit_id)
        if removed:
            logger.info(f"Thumbnail for {unit_id} invalidated")
        return removed

    def clear(self):
        with self._lock:
            self._cache.clear()
        logger.info("Thumbnail cache cleared")

    def batch_generate(self, units: Dict[str, Any]) -> Dict[str, str]:
        """
        Generate thumbnails for many units concurrently

        Args:
            units: {unit_id: content}

        Returns:
            {unit_id: payload} for successes only (cache hits included)
        """
        if not units:
            return {}

        results: Dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(units)))) as executor:
            futures = {
                executor.submit(self._generate, unit_id, content): unit_id
                for unit_id, content in units.items()
            }
            for future in as_completed(futures):
                payload = future.result()
                if payload is not None:
                    results[futures[future]] = payload

        logger.info(f"Batch thumbnails: {len(results)}/{len(units)} ready")
        return results

    def _generate(self, unit_id: str, content: Any) -> Optional[str]:
        """Payload on hit or success; None while in flight elsewhere or on failure"""
        with self._lock:
            record = self._cache.get(unit_id)
            if record is not None:
                return record.payload
            if unit_id in self._in_flight:
                logger.debug(f"Thumbnail for {unit_id} already generating")
                return None
            self._in_flight.add(unit_id)
        return self._render(unit_id, content)

    def _render(self, unit_id: str, content: Any) -> Optional[str]:
        """Caller must have marked ``unit_id`` in flight"""
        payload = None
        try:
            payload = self.renderer.render(content)
        except Exception as e:
            logger.error(f"Failed to generate thumbnail for {unit_id}: {e}", exc_info=True)
        finally:
            with self._lock:
                self._in_flight.discard(unit_id)
                if payload:
                    self._cache.set(ThumbnailRecord(unit_id=unit_id, payload=payload))
        return payload or None
