# Data Model Schemas
"""
Dataclasses for the recognition and markup pipeline.
Contains Box, TextRegion, MergedRegion, MathBlock, OCRResult and the
annotation types.
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in original-image pixel space"""
    min_x: float
    min_y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.min_x + self.width

    @property
    def max_y(self) -> float:
        return self.min_y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.min_x + self.width / 2, self.min_y + self.height / 2)

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.min_x, self.min_y, self.width, self.height))

    def intersects(self, other: "Box") -> bool:
        """True only when the intersection has non-zero area (touching edges don't count)"""
        return (self.min_x < other.max_x and self.max_x > other.min_x and
                self.min_y < other.max_y and self.max_y > other.min_y)

    def union(self, other: "Box") -> "Box":
        return Box.envelope([self, other])

    @staticmethod
    def envelope(boxes: List["Box"]) -> "Box":
        """Minimal rectangle containing all boxes"""
        if not boxes:
            raise ValueError("envelope of zero boxes")
        min_x = min(b.min_x for b in boxes)
        min_y = min(b.min_y for b in boxes)
        max_x = max(b.max_x for b in boxes)
        max_y = max(b.max_y for b in boxes)
        return Box(min_x, min_y, max_x - min_x, max_y - min_y)

    def to_list(self) -> List[float]:
        return [self.min_x, self.min_y, self.width, self.height]

    def to_dict(self) -> Dict:
        return {'x': self.min_x, 'y': self.min_y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class TextRegion:
    """One detected line from one detection pass"""
    source_pass: str
    text: str
    confidence: float  # 0-1
    box: Box


@dataclass
class MergedRegion:
    """Envelope of one or more TextRegions"""
    text: str
    confidence: float
    box: Box
    sources: List[str] = field(default_factory=list)  # Contributing pass names

    def to_dict(self) -> Dict:
        return {
            'text': self.text,
            'confidence': self.confidence,
            'box': self.box.to_dict(),
            'sources': list(self.sources),
        }


@dataclass
class MathBlock:
    """A MergedRegion judged mathematical.

    `confidence` is the primary detector confidence and is never overwritten;
    the specialized recognizer's output lives in its own fields.
    """
    text: str
    confidence: float
    box: Box
    math_likeness_score: float
    suspicious: bool = False
    specialized_text: Optional[str] = None
    specialized_confidence: Optional[float] = None
    sources: List[str] = field(default_factory=list)

    @classmethod
    def from_region(cls, region: MergedRegion, score: float, suspicious: bool) -> "MathBlock":
        return cls(
            text=region.text,
            confidence=region.confidence,
            box=region.box,
            math_likeness_score=score,
            suspicious=suspicious,
            sources=list(region.sources),
        )

    @property
    def resolved_text(self) -> str:
        return self.specialized_text if self.specialized_text is not None else self.text

    @property
    def resolved_confidence(self) -> float:
        return self.specialized_confidence if self.specialized_confidence is not None else self.confidence

    def to_dict(self) -> Dict:
        return {
            'text': self.text,
            'confidence': self.confidence,
            'box': self.box.to_dict(),
            'math_likeness_score': self.math_likeness_score,
            'suspicious': self.suspicious,
            'specialized_text': self.specialized_text,
            'specialized_confidence': self.specialized_confidence,
            'sources': list(self.sources),
        }


@dataclass(frozen=True)
class CropRect:
    """Integer crop rectangle fed to the specialized recognizer"""
    left: int
    top: int
    width: int
    height: int

    @property
    def signature(self) -> str:
        return f"{self.left}-{self.top}-{self.width}-{self.height}"

    def to_pil_box(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.left + self.width, self.top + self.height)


@dataclass
class OCRResult:
    """Aggregate recognition result for one image"""
    text: str
    bounding_boxes: List[Dict]
    confidence: float
    width: int
    height: int
    math_blocks: List[MathBlock]
    processing_time_ms: float
    specialized_calls: int = 0
    pre_cluster_regions: List[TextRegion] = field(default_factory=list)

    @property
    def dimensions(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}

    @property
    def usage(self) -> Dict[str, int]:
        return {'specialized_calls': self.specialized_calls}

    def to_dict(self) -> Dict:
        return {
            'text': self.text,
            'bounding_boxes': self.bounding_boxes,
            'confidence': self.confidence,
            'dimensions': self.dimensions,
            'math_blocks': [block.to_dict() for block in self.math_blocks],
            'processing_time_ms': self.processing_time_ms,
            'usage': self.usage,
        }


@dataclass
class AnnotationInstruction:
    """Upstream 'mark this step' instruction; only step_id is interpreted here"""
    step_id: str
    action: str = "comment"
    text: Optional[str] = None
    reasoning: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "AnnotationInstruction":
        step_id = data.get('step_id', data.get('stepId', data.get('line_id', '')))
        text = data.get('text')
        return cls(
            step_id='' if step_id is None else str(step_id),
            action=data.get('action') or "comment",
            text=None if text is None else str(text),
            reasoning=data.get('reasoning') if isinstance(data.get('reasoning'), str) else None,
        )


def _field(record, name: str):
    """Read a field from a dict-like or attribute-style record"""
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _as_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class StepGeometry:
    """A step record normalised at ingestion: one id, at most one box.

    Upstream producers name the id and the geometry differently; the known
    shapes are listed in ID_FIELDS and the BOX_* tuples. `box` is None when
    no known shape yields four finite numbers.
    """
    step_id: str
    box: Optional[Box]
    shape: str  # which geometry field the box came from

    ID_FIELDS = ('step_id', 'stepId', 'unified_step_id', 'line_id', 'globalBlockId', 'id')
    BOX_LIST_FIELDS = ('bbox',)
    BOX_RECT_FIELDS = ('box', 'position', 'coordinates', 'boundingBox')
    BOX_MIN_FIELDS = ('geometry',)

    @classmethod
    def from_record(cls, record) -> Optional["StepGeometry"]:
        """Return None when the record carries no usable id"""
        step_id = None
        for name in cls.ID_FIELDS:
            value = _field(record, name)
            if value is not None and str(value).strip():
                step_id = str(value).strip()
                break
        if step_id is None:
            return None

        # First known field that parses wins; an unparseable one does not hide the rest
        shape = 'none'
        for name in cls.BOX_LIST_FIELDS + cls.BOX_RECT_FIELDS + cls.BOX_MIN_FIELDS:
            raw = _field(record, name)
            if raw is None:
                continue
            box = cls._parse_box(raw, name in cls.BOX_MIN_FIELDS)
            if box is not None:
                return cls(step_id=step_id, box=box, shape=name)
            if shape == 'none':
                shape = name
        return cls(step_id=step_id, box=None, shape=shape)

    @staticmethod
    def _parse_box(raw, min_style: bool) -> Optional[Box]:
        if isinstance(raw, Box):
            values = raw.to_list()
        elif isinstance(raw, (list, tuple)):
            if len(raw) != 4:
                return None
            values = list(raw)
        elif min_style:
            values = [_field(raw, 'minX'), _field(raw, 'minY'), _field(raw, 'width'), _field(raw, 'height')]
        else:
            values = [_field(raw, 'x'), _field(raw, 'y'), _field(raw, 'width'), _field(raw, 'height')]

        numbers = [_as_float(v) for v in values]
        if any(n is None for n in numbers):
            return None
        return Box(*numbers)


@dataclass
class PlacedAnnotation:
    """An instruction resolved to page coordinates"""
    action: str
    box: List[float]  # [x, y, width, height]
    text: Optional[str] = None
    reasoning: Optional[str] = None
    step_id: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)
