"""
Image Synthesis Orchestrator - finds image elements that need a new image,
generates them concurrently and writes the results back into the patch

每个请求独立重试（最多 max_attempts 次，第 n 次失败后等待 n * delay_unit 秒），
单个失败不会影响其它请求，也不会让整个编辑失败。
"""
import logging
import math
import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from tenacity import Retrying, stop_after_attempt

from models.image_generation import ImageSynthesisRequest, ImageSynthesisResult
from models.worksheet import (
    UNIT_COMPONENT,
    ComponentPatch,
    EditPatch,
    PagePatch,
)
from .ai_providers.image import ImageProvider

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_SIZE = 512

EDUCATIONAL_TERMS = ('educational content', 'child-friendly', 'safe for children', 'bright and engaging')
EDUCATIONAL_QUALIFIERS = ('educational content', 'child-friendly')
STYLE_QUALIFIERS = ('professional digital art', 'vibrant colors')

_PAGE_RESULT_ID_RE = re.compile(r'^(?P<index>\d+)-(?P<element_id>.+)$')
COMPONENT_RESULT_PREFIX = 'component-'


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: wait ``attempt * delay_unit`` seconds after failed attempt ``attempt``"""
    max_attempts: int = 3
    delay_unit: float = 1.0

    def delay(self, attempt: int) -> float:
        return attempt * self.delay_unit


def normalize_dimensions(width: int, height: int, step: int = 16,
                         min_size: int = 256, max_size: int = 2048) -> Tuple[int, int]:
    """Round to a multiple of ``step`` (half up) and clamp to [min_size, max_size]"""
    def normalize(value) -> int:
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = DEFAULT_REQUEST_SIZE
        rounded = int(math.floor(value / step + 0.5)) * step
        return max(min_size, min(max_size, rounded))

    return normalize(width), normalize(height)


def enhance_prompt(prompt: str) -> str:
    """
    Add child-safety and style qualifiers that are not already present.

    Applying it twice gives the same prompt as applying it once.
    """
    base = (prompt or '').strip() or 'image'
    lowered = base.lower()
    parts = [base]
    if not any(term in lowered for term in EDUCATIONAL_TERMS):
        parts.extend(EDUCATIONAL_QUALIFIERS)
    parts.extend(q for q in STYLE_QUALIFIERS if q not in lowered)
    return ', '.join(parts)


def _size_or_default(value) -> int:
    try:
        size = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_REQUEST_SIZE
    return size if size > 0 else DEFAULT_REQUEST_SIZE


class ImageSynthesisOrchestrator:
    """Collects, dispatches and applies image synthesis requests for one patch"""

    def __init__(self, image_provider: Optional[ImageProvider], retry_policy: Optional[RetryPolicy] = None,
                 size_step: int = 16, min_size: int = 256, max_size: int = 2048,
                 sleep: Callable[[float], None] = time.sleep):
        self.image_provider = image_provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.size_step = size_step
        self.min_size = min_size
        self.max_size = max_size
        self._sleep = sleep

    def collect_requests(self, patch: EditPatch, unit_type: Optional[str] = None,
                         element_id: Optional[str] = None) -> List[ImageSynthesisRequest]:
        """
        Find elements that have an ``imagePrompt`` but no ``url``

        Args:
            patch: ComponentPatch or PagePatch
            unit_type: optional, defaults to the patch's own tag
            element_id: the edited component's id (component patches only)
        """
        unit_type = unit_type or patch.unit_type
        requests: List[ImageSynthesisRequest] = []

        if unit_type == UNIT_COMPONENT:
            if not isinstance(patch, ComponentPatch):
                return requests
            properties = patch.properties or {}
            if properties.get('imagePrompt') and not properties.get('url'):
                requests.append(ImageSynthesisRequest(
                    id=f"{COMPONENT_RESULT_PREFIX}{element_id or 'unknown'}",
                    prompt=str(properties['imagePrompt']),
                    width=_size_or_default(properties.get('width')),
                    height=_size_or_default(properties.get('height')),
                ))
        elif isinstance(patch, PagePatch):
            for index, element in enumerate(patch.elements or []):
                properties = element.properties
                if not element.is_image:
                    continue
                if properties.get('imagePrompt') and not properties.get('url'):
                    requests.append(ImageSynthesisRequest(
                        id=f"{index}-{element.id}",
                        prompt=str(properties['imagePrompt']),
                        width=_size_or_default(properties.get('width')),
                        height=_size_or_default(properties.get('height')),
                    ))

        if requests:
            logger.info(f"🖼️ Found {len(requests)} image(s) to generate")
        return requests

    def generate(self, requests: List[ImageSynthesisRequest]) -> List[ImageSynthesisResult]:
        """
        Run all requests concurrently; one result per request, in request order.

        Never raises: failures come back as ``success=False`` results.
        """
        if not requests:
            return []

        results: List[Optional[ImageSynthesisResult]] = [None] * len(requests)
        with ThreadPoolExecutor(max_workers=len(requests)) as executor:
            futures = {executor.submit(self._generate_one, request): i for i, request in enumerate(requests)}
            for future in as_completed(futures):
                i = futures[future]
                try:
                    results[i] = future.result()
                except Exception as e:
                    logger.error(f"Image request {requests[i].id} crashed: {e}", exc_info=True)
                    results[i] = ImageSynthesisResult.failed(requests[i].id, str(e))

        success_count = sum(1 for r in results if r.success)
        logger.info(f"✅ Image generation finished: {success_count}/{len(results)} succeeded")
        return results

    def _generate_one(self, request: ImageSynthesisRequest) -> ImageSynthesisResult:
        if self.image_provider is None:
            return ImageSynthesisResult.failed(request.id, "Image provider is not configured")

        width, height = normalize_dimensions(
            request.width, request.height, self.size_step, self.min_size, self.max_size
        )
        prompt = enhance_prompt(request.prompt)
        attempts = 0

        def attempt():
            nonlocal attempts
            attempts += 1
            logger.debug(f"Generating image {request.id} (attempt {attempts}/{self.retry_policy.max_attempts})")
            return self.image_provider.generate_image(prompt, width, height)

        def log_retry(retry_state):
            logger.warning(
                f"Image {request.id} attempt {retry_state.attempt_number} failed: "
                f"{retry_state.outcome.exception()}, retrying in "
                f"{self.retry_policy.delay(retry_state.attempt_number):.1f}s"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.retry_policy.max_attempts),
            wait=lambda retry_state: self.retry_policy.delay(retry_state.attempt_number),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )
        try:
            image = retrying(attempt)
        except Exception as e:
            logger.error(f"❌ Image {request.id} failed after {attempts} attempt(s): {e}")
            return ImageSynthesisResult.failed(request.id, str(e), attempts=attempts)

        if image is None or not image.payload:
            return ImageSynthesisResult.failed(request.id, "No image data received", attempts=attempts)

        return ImageSynthesisResult.succeeded(
            request.id, image.payload, image.width, image.height,
            mime_type=image.mime_type, attempts=attempts,
        )

    def apply_results(self, patch: EditPatch, unit_type: Optional[str],
                      results: List[ImageSynthesisResult]) -> EditPatch:
        """Return a new patch with ``properties.url`` set from successful results"""
        unit_type = unit_type or patch.unit_type
        updated = patch.copy()

        if unit_type == UNIT_COMPONENT and isinstance(updated, ComponentPatch):
            for result in results:
                if result.success and result.id.startswith(COMPONENT_RESULT_PREFIX):
                    updated.properties = dict(updated.properties or {})
                    updated.properties['url'] = result.data_url
                    break
            return updated

        if isinstance(updated, PagePatch) and updated.elements:
            for result in results:
                if not result.success:
                    continue
                match = _PAGE_RESULT_ID_RE.match(result.id)
                if not match:
                    continue
                index = int(match.group('index'))
                if index < len(updated.elements) and updated.elements[index].id == match.group('element_id'):
                    updated.elements[index].properties['url'] = result.data_url
                else:
                    logger.warning(f"Image result {result.id} does not match any element, skipped")
        return updated

    @staticmethod
    def failure_messages(results: List[ImageSynthesisResult]) -> List[str]:
        return [f"{r.id}: {r.error or 'unknown error'}" for r in results if not r.success]
