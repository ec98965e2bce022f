"""
Image generation data models - placeholders, synthesis requests and results
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

DEFAULT_PLACEHOLDER_WIDTH = 640
DEFAULT_PLACEHOLDER_HEIGHT = 480


@dataclass
class ImagePlaceholderRecord:
    """An embedded image payload hidden from the Edit Proposer for one round trip"""
    id: str
    original_payload: str  # base64 部分（不含 data: 前缀）
    prompt: str
    width: int = DEFAULT_PLACEHOLDER_WIDTH
    height: int = DEFAULT_PLACEHOLDER_HEIGHT
    source_markup: str = ''  # 被替换的原始文本（data URL 或完整 <img> 标签）
    alt: Optional[str] = None


@dataclass
class ImageSynthesisRequest:
    id: str
    prompt: str
    width: int = 512
    height: int = 512

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'prompt': self.prompt, 'width': self.width, 'height': self.height}


@dataclass
class ImageSynthesisResult:
    """Outcome of one request; ``payload`` is set iff ``success``"""
    id: str
    success: bool
    payload: Optional[str] = None
    error: Optional[str] = None
    dimensions: Optional[Tuple[int, int]] = None
    mime_type: str = 'image/png'
    attempts: int = 0

    @classmethod
    def succeeded(cls, request_id: str, payload: str, width: int, height: int,
                  mime_type: str = 'image/png', attempts: int = 1) -> 'ImageSynthesisResult':
        return cls(id=request_id, success=True, payload=payload, dimensions=(width, height),
                   mime_type=mime_type, attempts=attempts)

    @classmethod
    def failed(cls, request_id: str, error: str, attempts: int = 0) -> 'ImageSynthesisResult':
        return cls(id=request_id, success=False, error=error, attempts=attempts)

    @property
    def data_url(self) -> Optional[str]:
        if not self.success or not self.payload:
            return None
        return f"data:{self.mime_type};base64,{self.payload}"

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'success': self.success, 'attempts': self.attempts}
        if self.error:
            result['error'] = self.error
        if self.dimensions:
            result['dimensions'] = {'width': self.dimensions[0], 'height': self.dimensions[1]}
        return result


@dataclass
class EncodedUnit:
    """Output of ImageMetadataCodec.encode"""
    encoded_unit: Any
    placeholders: Dict[str, ImagePlaceholderRecord] = field(default_factory=dict)
    saved_bytes: int = 0

    @property
    def replaced_count(self) -> int:
        return len(self.placeholders)


@dataclass
class ImageIntent:
    """What the Edit Proposer wants done with each image"""
    keep_ids: Set[str] = field(default_factory=set)
    new_requests: List[ImageSynthesisRequest] = field(default_factory=list)


@dataclass
class ReleasedImages:
    """Markers that could not be restored, turned into pending synthesis work"""
    released_ids: Set[str] = field(default_factory=set)  # 元素 id：url 被释放为 imagePrompt
    embedded_requests: List[ImageSynthesisRequest] = field(default_factory=list)
