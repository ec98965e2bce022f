"""Services package"""
from .image_metadata_codec import ImageMetadataCodec
from .image_synthesis import ImageSynthesisOrchestrator, RetryPolicy, enhance_prompt, normalize_dimensions
from .edit_proposer import EditProposer, EditProposerError
from .thumbnail_service import ThumbnailCacheService, MemoryThumbnailCache, PillowThumbnailRenderer
from .worksheet_editing_service import WorksheetEditingService, EditResult, EditStats, format_changes

__all__ = [
    'ImageMetadataCodec',
    'ImageSynthesisOrchestrator',
    'RetryPolicy',
    'enhance_prompt',
    'normalize_dimensions',
    'EditProposer',
    'EditProposerError',
    'ThumbnailCacheService',
    'MemoryThumbnailCache',
    'PillowThumbnailRenderer',
    'WorksheetEditingService',
    'EditResult',
    'EditStats',
    'format_changes',
]
