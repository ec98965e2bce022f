"""Data models package"""
from .worksheet import (
    Component,
    Page,
    DocumentUnit,
    ComponentPatch,
    PagePatch,
    EditPatch,
    EditChange,
    EditContext,
    EditTarget,
    PatchFormatError,
    patch_from_dict,
    unit_from_dict,
    UNIT_COMPONENT,
    UNIT_PAGE,
    UNIT_TYPES,
    IMAGE_PLACEHOLDER_TYPE,
)
from .image_generation import (
    ImagePlaceholderRecord,
    ImageSynthesisRequest,
    ImageSynthesisResult,
    EncodedUnit,
    ImageIntent,
    ReleasedImages,
)
from .thumbnail import ThumbnailRecord

__all__ = [
    'Component',
    'Page',
    'DocumentUnit',
    'ComponentPatch',
    'PagePatch',
    'EditPatch',
    'EditChange',
    'EditContext',
    'EditTarget',
    'PatchFormatError',
    'patch_from_dict',
    'unit_from_dict',
    'UNIT_COMPONENT',
    'UNIT_PAGE',
    'UNIT_TYPES',
    'IMAGE_PLACEHOLDER_TYPE',
    'ImagePlaceholderRecord',
    'ImageSynthesisRequest',
    'ImageSynthesisResult',
    'EncodedUnit',
    'ImageIntent',
    'ReleasedImages',
    'ThumbnailRecord',
]
