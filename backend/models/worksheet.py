"""
Worksheet data models - document units, edit targets and patches

The wire format coming from the canvas editor is camelCase JSON; these
dataclasses keep the property bags as plain dicts (``imagePrompt``, ``url``...)
and carry any layout fields they do not interpret in ``extra`` so that a
unit survives a round trip untouched.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union

UNIT_COMPONENT = 'component'
UNIT_PAGE = 'page'
UNIT_TYPES = (UNIT_COMPONENT, UNIT_PAGE)

IMAGE_PLACEHOLDER_TYPE = 'image-placeholder'

DIFFICULTIES = ('easy', 'medium', 'hard')


class PatchFormatError(ValueError):
    """Raised when a proposed patch does not have the expected shape"""


@dataclass
class Component:
    """A typed visual element on a worksheet page"""
    id: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    # position / size / zIndex / locked / visible 等布局字段原样保留
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_image(self) -> bool:
        return self.type == IMAGE_PLACEHOLDER_TYPE

    @property
    def url(self) -> Optional[str]:
        return self.properties.get('url') or None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Component':
        if not isinstance(data, dict):
            raise PatchFormatError(f"Component must be an object, got {type(data).__name__}")
        element_id = data.get('id')
        if not isinstance(element_id, str) or not element_id:
            raise PatchFormatError("Component is missing a string 'id'")
        properties = data.get('properties') or {}
        if not isinstance(properties, dict):
            raise PatchFormatError(f"Component {element_id}: 'properties' must be an object")
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in ('id', 'type', 'properties')}
        return cls(
            id=element_id,
            type=str(data.get('type') or ''),
            properties=copy.deepcopy(properties),
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'type': self.type}
        result.update(copy.deepcopy(self.extra))
        result['properties'] = copy.deepcopy(self.properties)
        return result

    def copy(self) -> 'Component':
        return Component(
            id=self.id,
            type=self.type,
            properties=copy.deepcopy(self.properties),
            extra=copy.deepcopy(self.extra),
        )


@dataclass
class Page:
    """An ordered sequence of components plus a title"""
    page_id: str
    title: str = ''
    elements: List[Component] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def find_element(self, element_id: str) -> Optional[Component]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], page_id: Optional[str] = None) -> 'Page':
        if not isinstance(data, dict):
            raise PatchFormatError(f"Page must be an object, got {type(data).__name__}")
        elements = data.get('elements') or []
        if not isinstance(elements, list):
            raise PatchFormatError("Page 'elements' must be a list")
        extra = {
            k: copy.deepcopy(v) for k, v in data.items()
            if k not in ('pageId', 'id', 'title', 'elements')
        }
        return cls(
            page_id=str(data.get('pageId') or data.get('id') or page_id or ''),
            title=str(data.get('title') or ''),
            elements=[Component.from_dict(el) for el in elements],
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'pageId': self.page_id, 'title': self.title}
        result.update(copy.deepcopy(self.extra))
        result['elements'] = [el.to_dict() for el in self.elements]
        return result

    def copy(self) -> 'Page':
        return Page(
            page_id=self.page_id,
            title=self.title,
            elements=[el.copy() for el in self.elements],
            extra=copy.deepcopy(self.extra),
        )


DocumentUnit = Union[Component, Page]


@dataclass
class ComponentPatch:
    """Changed properties of a single component"""
    unit_type: ClassVar[str] = UNIT_COMPONENT
    properties: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComponentPatch':
        if not isinstance(data, dict):
            raise PatchFormatError("Patch must be an object")
        properties = data.get('properties')
        if properties is not None and not isinstance(properties, dict):
            raise PatchFormatError("Patch 'properties' must be an object")
        return cls(properties=copy.deepcopy(properties) if properties is not None else None)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.properties is not None:
            result['properties'] = copy.deepcopy(self.properties)
        return result

    def copy(self) -> 'ComponentPatch':
        return ComponentPatch(properties=copy.deepcopy(self.properties))


@dataclass
class PagePatch:
    """Changed title and/or the complete updated elements list of a page"""
    unit_type: ClassVar[str] = UNIT_PAGE
    title: Optional[str] = None
    elements: Optional[List[Component]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PagePatch':
        if not isinstance(data, dict):
            raise PatchFormatError("Patch must be an object")
        title = data.get('title')
        if title is not None and not isinstance(title, str):
            raise PatchFormatError("Patch 'title' must be a string")
        elements = data.get('elements')
        if elements is not None:
            if not isinstance(elements, list):
                raise PatchFormatError("Patch 'elements' must be a list")
            elements = [Component.from_dict(el) for el in elements]
        return cls(title=title, elements=elements)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.title is not None:
            result['title'] = self.title
        if self.elements is not None:
            result['elements'] = [el.to_dict() for el in self.elements]
        return result

    def copy(self) -> 'PagePatch':
        return PagePatch(
            title=self.title,
            elements=[el.copy() for el in self.elements] if self.elements is not None else None,
        )


EditPatch = Union[ComponentPatch, PagePatch]


def patch_from_dict(unit_type: str, data: Dict[str, Any]) -> EditPatch:
    """Build the patch variant matching ``unit_type``"""
    if unit_type == UNIT_COMPONENT:
        return ComponentPatch.from_dict(data)
    if unit_type == UNIT_PAGE:
        return PagePatch.from_dict(data)
    raise PatchFormatError(f"Unknown unit type: {unit_type}")


def unit_from_dict(unit_type: str, data: Dict[str, Any], page_id: Optional[str] = None) -> DocumentUnit:
    if unit_type == UNIT_COMPONENT:
        return Component.from_dict(data)
    return Page.from_dict(data, page_id=page_id)


@dataclass
class EditChange:
    """Human-readable description of one modification"""
    field: str
    old_value: Any = None
    new_value: Any = None
    description: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EditChange':
        return cls(
            field=str(data.get('field', '')),
            old_value=data.get('oldValue'),
            new_value=data.get('newValue'),
            description=str(data.get('description', '')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'oldValue': self.old_value,
            'newValue': self.new_value,
            'description': self.description,
        }


@dataclass
class EditContext:
    """Worksheet context passed to the Edit Proposer"""
    topic: str
    age_group: str
    difficulty: str = 'medium'
    language: str = 'en'
    user_id: Optional[str] = None  # 仅用于 token 统计

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EditContext':
        return cls(
            topic=str(data.get('topic') or ''),
            age_group=str(data.get('ageGroup') or ''),
            difficulty=str(data.get('difficulty') or 'medium'),
            language=str(data.get('language') or 'en'),
            user_id=data.get('userId'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic': self.topic,
            'ageGroup': self.age_group,
            'difficulty': self.difficulty,
            'language': self.language,
            'userId': self.user_id,
        }


@dataclass
class EditTarget:
    """What is being edited: a single component or a whole page"""
    unit_type: str
    page_id: str
    data: DocumentUnit
    element_id: Optional[str] = None

    @property
    def is_component(self) -> bool:
        return self.unit_type == UNIT_COMPONENT

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'unitType': self.unit_type,
            'pageId': self.page_id,
            'data': self.data.to_dict(),
        }
        if self.element_id is not None:
            result['elementId'] = self.element_id
        return result
