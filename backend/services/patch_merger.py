"""
Patch Merger - applies an Edit Proposer patch onto the original unit

图片不会被静默丢弃：补丁里的元素如果没有 url，而原始元素有，就沿用原始 url。
All functions return new objects; inputs are never modified.
"""
import copy
import logging
from typing import Any, Dict, Iterable, Optional

from models.worksheet import (
    Component,
    ComponentPatch,
    DocumentUnit,
    EditPatch,
    Page,
    PagePatch,
    PatchFormatError,
)

logger = logging.getLogger(__name__)


def merge_component(original_properties: Optional[Dict[str, Any]],
                    patch_properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow override: patch keys win, nested objects are replaced wholesale"""
    merged = copy.deepcopy(original_properties or {})
    if patch_properties:
        for key, value in patch_properties.items():
            merged[key] = copy.deepcopy(value)
    return merged


def _keep_original_url(original: Component, merged: Component):
    """An absent or empty url in the result never replaces an existing image"""
    if original.url and not merged.url:
        merged.properties['url'] = original.url
        logger.debug(f"Preserved original image url for element {merged.id}")


def _merge_element(original: Optional[Component], patched: Component) -> Component:
    merged = patched.copy()
    if original is not None:
        _keep_original_url(original, merged)
    return merged


def merge_page(original: Page, patch: PagePatch) -> Page:
    """
    Merge a page patch

    ``patch.elements`` (when given) decides membership and order; elements
    matched by id keep their original image url when the patch leaves it empty.
    """
    merged = original.copy()
    if patch.title is not None:
        merged.title = patch.title

    if patch.elements is None:
        return merged

    originals = {element.id: element for element in original.elements}
    merged.elements = [_merge_element(originals.get(element.id), element) for element in patch.elements]

    dropped = set(originals) - {element.id for element in patch.elements}
    if dropped:
        logger.info(f"Page {original.page_id}: {len(dropped)} element(s) removed by patch")
    return merged


def merge(unit: DocumentUnit, patch: EditPatch) -> DocumentUnit:
    """Dispatch on the patch variant"""
    if isinstance(unit, Component) and isinstance(patch, ComponentPatch):
        merged = unit.copy()
        merged.properties = merge_component(unit.properties, patch.properties)
        _keep_original_url(unit, merged)
        return merged
    if isinstance(unit, Page) and isinstance(patch, PagePatch):
        return merge_page(unit, patch)
    raise PatchFormatError(
        f"Cannot apply a {getattr(patch, 'unit_type', type(patch).__name__)} patch "
        f"to a {type(unit).__name__}"
    )


def _carry_url(original: Optional[Component], properties: Dict[str, Any],
               element_id: str, released_ids: Iterable[str]) -> bool:
    if original is None or element_id in released_ids:
        return False
    original_url = original.url
    if not original_url or properties.get('url'):
        return False
    prompt = properties.get('imagePrompt')
    if prompt and prompt != original.properties.get('imagePrompt'):
        # prompt 变了，需要重新生成
        return False
    properties['url'] = original_url
    return True


def carry_over_unchanged_images(unit: DocumentUnit, patch: EditPatch,
                                released_ids: Iterable[str] = ()) -> EditPatch:
    """
    Copy original urls into patched image elements that merely omitted them

    Runs before synthesis so that an element whose prompt did not change is not
    sent to the image API again. Elements in ``released_ids`` had their marker
    released by the codec and must be regenerated.
    """
    released_ids = set(released_ids)
    result = patch.copy()
    carried = 0

    if isinstance(unit, Component) and isinstance(result, ComponentPatch):
        if result.properties is not None and _carry_url(unit, result.properties, unit.id, released_ids):
            carried += 1
    elif isinstance(unit, Page) and isinstance(result, PagePatch):
        for element in result.elements or []:
            if _carry_url(unit.find_element(element.id), element.properties, element.id, released_ids):
                carried += 1
    else:
        raise PatchFormatError(f"Patch does not match a {type(unit).__name__}")

    if carried:
        logger.info(f"Carried over {carried} unchanged image(s)")
    return result
