"""
Worksheet Editing Service - edit-and-image-synthesis pipeline

一次编辑的流程:
1. 校验请求（不做任何 I/O）
2. 用图片标记替换 base64 图片，调用文本模型
3. 还原未改动的图片，解析 patch
4. 把仍未还原的标记转成图片生成请求，未改动的图片直接沿用原 url
5. 并发生成新图片并写回 patch
6. 合并 patch 与原始数据（不会丢失原有图片）

图片生成失败不会导致编辑失败，失败原因放在 image_errors 中返回。
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from models.image_generation import ImageSynthesisResult
from models.worksheet import (
    UNIT_COMPONENT,
    UNIT_PAGE,
    Component,
    DocumentUnit,
    EditChange,
    EditContext,
    EditPatch,
    Page,
    PatchFormatError,
    patch_from_dict,
)
from utils.validators import EditRequest, ValidationError, validate_edit_request
from . import patch_merger
from .ai_providers.image import ImageProvider
from .ai_providers.text import TextProvider
from .edit_proposer import EditProposer, EditProposerError, parse_response
from .image_metadata_codec import ImageMetadataCodec
from .image_synthesis import ImageSynthesisOrchestrator, RetryPolicy

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = 'Changes applied'


@dataclass
class EditStats:
    original_images: int = 0
    kept_images: int = 0
    new_images: int = 0
    requested_images: int = 0
    generated_images: int = 0
    failed_images: int = 0
    saved_bytes: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'originalImages': self.original_images,
            'keptImages': self.kept_images,
            'newImages': self.new_images,
            'requestedImages': self.requested_images,
            'generatedImages': self.generated_images,
            'failedImages': self.failed_images,
            'savedBytes': self.saved_bytes,
        }


@dataclass
class EditResult:
    success: bool
    patch: Optional[EditPatch] = None
    changes: List[EditChange] = field(default_factory=list)
    error: Optional[str] = None
    merged_unit: Optional[DocumentUnit] = None
    image_errors: List[str] = field(default_factory=list)
    stats: EditStats = field(default_factory=EditStats)

    @classmethod
    def failure(cls, error: str, stats: Optional[EditStats] = None) -> 'EditResult':
        return cls(success=False, error=error, stats=stats or EditStats())

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.success,
            'patch': self.patch.to_dict() if self.patch is not None else {},
            'changes': [change.to_dict() for change in self.changes],
            'imageErrors': list(self.image_errors),
            'stats': self.stats.to_dict(),
        }
        if self.error:
            result['error'] = self.error
        if self.merged_unit is not None:
            result['mergedUnit'] = self.merged_unit.to_dict()
        return result


def format_changes(changes: List[EditChange]) -> str:
    """Bullet list of change descriptions for display"""
    if not changes:
        return NO_CHANGES_MESSAGE
    return '\n'.join(f"• {change.description}" for change in changes)


class WorksheetEditingService:
    """
    Entry point of the edit pipeline

    Providers are injected; see ``services.ai_service_manager`` for the
    app-wide instance built from configuration.
    """

    def __init__(self, text_provider: Optional[TextProvider] = None,
                 image_provider: Optional[ImageProvider] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 edit_proposer: Optional[EditProposer] = None,
                 orchestrator: Optional[ImageSynthesisOrchestrator] = None,
                 size_limits: Optional[Dict[str, int]] = None):
        if edit_proposer is None and text_provider is None:
            raise ValueError("text_provider or edit_proposer is required")
        self.edit_proposer = edit_proposer or EditProposer(text_provider)
        self.orchestrator = orchestrator or ImageSynthesisOrchestrator(
            image_provider, retry_policy=retry_policy, **(size_limits or {})
        )

    def edit(self, request_data: Union[Dict[str, Any], EditRequest]) -> EditResult:
        """
        Run one edit

        Args:
            request_data: ``{editTarget, instruction, context}`` or a validated EditRequest

        Returns:
            EditResult; ``success=False`` for validation and upstream failures
        """
        if isinstance(request_data, EditRequest):
            request = request_data
        else:
            try:
                request = validate_edit_request(request_data)
            except ValidationError as e:
                logger.warning(f"Edit request rejected: {e}")
                return EditResult.failure(str(e))

        target = request.target
        logger.info(
            f"🎯 Editing {target.unit_type} on page {target.page_id}"
            f"{f' (element {target.element_id})' if target.element_id else ''}: "
            f"{request.instruction[:100]}"
        )

        codec = ImageMetadataCodec()
        encoded = codec.encode(target.data)
        stats = EditStats(original_images=encoded.replaced_count, saved_bytes=encoded.saved_bytes)

        try:
            raw_text = self.edit_proposer.propose(
                encoded.encoded_unit, request.instruction, request.context, target.unit_type
            )
            intent = codec.decode(raw_text, encoded.placeholders)
            stats.kept_images = len(intent.keep_ids)
            stats.new_images = len(intent.new_requests)

            patch_data, changes = parse_response(codec.restore(raw_text, encoded.placeholders))
            owner_id = target.element_id if target.unit_type == UNIT_COMPONENT else None
            patch_data, released = codec.release_unresolved(patch_data, owner_id, encoded.placeholders)
            patch = patch_from_dict(target.unit_type, patch_data)
        except EditProposerError as e:
            logger.error(f"❌ Edit failed: {e}")
            return EditResult.failure(str(e), stats)
        except PatchFormatError as e:
            logger.error(f"❌ AI service returned an invalid patch: {e}")
            return EditResult.failure(f"Invalid patch from AI service: {e}", stats)

        patch = patch_merger.carry_over_unchanged_images(target.data, patch, released.released_ids)

        requests = self.orchestrator.collect_requests(patch, target.unit_type, element_id=target.element_id)
        requests.extend(released.embedded_requests)
        results = self.orchestrator.generate(requests)

        patch = self.orchestrator.apply_results(patch, target.unit_type, results)
        if released.embedded_requests:
            patch = self._fill_embedded(codec, patch, target.unit_type, results)

        merged = patch_merger.merge(target.data, patch)

        stats.requested_images = len(requests)
        stats.generated_images = sum(1 for r in results if r.success)
        stats.failed_images = stats.requested_images - stats.generated_images
        image_errors = self.orchestrator.failure_messages(results)

        logger.info(
            f"✅ Edit complete: {len(changes)} change(s), images kept={stats.kept_images}, "
            f"generated={stats.generated_images}/{stats.requested_images}, saved {stats.saved_bytes} bytes"
        )
        return EditResult(
            success=True,
            patch=patch,
            changes=changes,
            merged_unit=merged,
            image_errors=image_errors,
            stats=stats,
        )

    @staticmethod
    def _fill_embedded(codec: ImageMetadataCodec, patch: EditPatch, unit_type: str,
                       results: List[ImageSynthesisResult]) -> EditPatch:
        by_id = {result.id: result for result in results}
        return patch_from_dict(unit_type, codec.fill_embedded(patch.to_dict(), by_id))

    def edit_component(self, page_id: str, element_id: str, element: Union[Component, Dict[str, Any]],
                       instruction: str, context: Union[EditContext, Dict[str, Any]]) -> EditResult:
        """Edit a single component"""
        return self.edit({
            'editTarget': {
                'unitType': UNIT_COMPONENT,
                'pageId': page_id,
                'elementId': element_id,
                'data': element.to_dict() if isinstance(element, Component) else element,
            },
            'instruction': instruction,
            'context': context.to_dict() if isinstance(context, EditContext) else context,
        })

    def edit_page(self, page_id: str, page: Union[Page, Dict[str, Any]], instruction: str,
                  context: Union[EditContext, Dict[str, Any]]) -> EditResult:
        """Edit an entire page"""
        return self.edit({
            'editTarget': {
                'unitType': UNIT_PAGE,
                'pageId': page_id,
                'data': page.to_dict() if isinstance(page, Page) else page,
            },
            'instruction': instruction,
            'context': context.to_dict() if isinstance(context, EditContext) else context,
        })

    format_changes = staticmethod(format_changes)
