# Stage 1: Multi-Pass Text Detection
"""
Runs three recognition passes over differently preprocessed copies of the
page against the text detection collaborator:
- Pass A (clean): original image
- Pass B (enhanced): upscaled, grayscale, contrast-normalized
- Pass C (aggressive): upscaled, sharpened, binarized

Each pass is extracted into line-level TextRegions in original-image pixel
space. Passes run concurrently; one pass failing does not affect the others.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from data_models import Box, TextRegion
from errors import AllPassesFailure, PassRecognitionFailure
from utils.coordinate_utils import CoordinateConverter
from utils.image_utils import preprocess_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionPass:
    """One detection pass: a name, preprocessing operations, and whether it upscales"""
    name: str
    operations: Tuple[str, ...]
    upscaled: bool


PASSES = (
    DetectionPass('pass_A_clean_scan', (), False),
    DetectionPass('pass_B_enhanced_scan', ('grayscale', 'normalize'), True),
    DetectionPass('pass_C_aggressive_scan', ('sharpen', 'threshold'), True),
)


def _get(obj: Any, *names: str) -> Any:
    """Read the first present field from a dict or attribute-style node"""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _children(obj: Any, name: str) -> List[Any]:
    return list(_get(obj, name) or [])


def _vertices(element: Any) -> List[Tuple[float, float]]:
    """Polygon vertices of an element; coordinates omitted by the API are 0"""
    bounding = _get(element, 'boundingBox', 'bounding_box', 'boundingPoly', 'bounding_poly')
    points = []
    for vertex in _children(bounding, 'vertices'):
        x = _get(vertex, 'x') or 0
        y = _get(vertex, 'y') or 0
        points.append((float(x), float(y)))
    return points


def _word_text(word: Any) -> str:
    text = _get(word, 'text')
    if text is not None:
        return str(text)
    return ''.join(str(_get(s, 'text') or '') for s in _children(word, 'symbols'))


def _clamp_confidence(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return min(1.0, max(0.0, float(value)))


class TextAnnotationParser:
    """Turn a hierarchical full-text structure into line-level TextRegions"""

    def __init__(self, line_group_tolerance_y: float = 10):
        self.line_group_tolerance_y = line_group_tolerance_y
        self.converter = CoordinateConverter()

    def extract_lines(self, annotation: Any, source: str, scale: float = 1.0) -> List[TextRegion]:
        """Prefer the collaborator's own lines; otherwise group words by Y proximity"""
        regions: List[TextRegion] = []
        if annotation is None:
            return regions

        for page in _children(annotation, 'pages'):
            for block in _children(page, 'blocks'):
                for paragraph in _children(block, 'paragraphs'):
                    lines = _children(paragraph, 'lines')
                    if lines:
                        regions.extend(self._from_lines(lines, source, scale))
                    else:
                        regions.extend(self._group_words(_children(paragraph, 'words'), source, scale))
        return regions

    def _from_lines(self, lines: Sequence[Any], source: str, scale: float) -> List[TextRegion]:
        regions = []
        for line in lines:
            box = self.converter.vertices_to_box(_vertices(line), scale)
            if box is None:
                logger.debug(f"[{source}] Skipping line without bounding box")
                continue

            words = _children(line, 'words')
            text = _get(line, 'text')
            if text is None:
                text = ' '.join(_word_text(w) for w in words)

            # Line confidence falls back to the mean of its words
            confidence = _get(line, 'confidence')
            if not confidence:
                word_confs = [c for c in (_get(w, 'confidence') for w in words) if c is not None]
                confidence = sum(word_confs) / len(word_confs) if word_confs else 0.0

            regions.append(TextRegion(
                source_pass=source,
                text=str(text).strip(),
                confidence=_clamp_confidence(confidence),
                box=box
            ))
        return regions

    def _group_words(self, words: Sequence[Any], source: str, scale: float) -> List[TextRegion]:
        """
        Fallback line grouping: sort words by (y, x), then greedily append
        consecutive words whose y differs from the previous word by at most
        the tolerance. Each group becomes one region.
        """
        positioned = []
        for word in words:
            box = self.converter.vertices_to_box(_vertices(word), scale)
            if box is None:
                continue
            positioned.append((box, word))
        positioned.sort(key=lambda p: (p[0].min_y, p[0].min_x))

        groups: List[List[Tuple[Box, Any]]] = []
        for entry in positioned:
            if groups and abs(entry[0].min_y - groups[-1][-1][0].min_y) <= self.line_group_tolerance_y:
                groups[-1].append(entry)
            else:
                groups.append([entry])

        regions = []
        for group in groups:
            group.sort(key=lambda p: p[0].min_x)
            confs = [_get(w, 'confidence') or 0.0 for _, w in group]
            regions.append(TextRegion(
                source_pass=source,
                text=' '.join(_word_text(w) for _, w in group).strip(),
                confidence=_clamp_confidence(sum(confs) / len(confs)),
                box=Box.envelope([b for b, _ in group])
            ))
        return regions


class MultiPassTextDetector:
    """Stage 1: three concurrent detection passes with per-pass failure isolation"""

    def __init__(self, client, resize_factor: float = 2, line_group_tolerance_y: float = 10,
                 enable_preprocessing: bool = True):
        self.client = client
        self.resize_factor = resize_factor
        self.enable_preprocessing = enable_preprocessing
        self.parser = TextAnnotationParser(line_group_tolerance_y)

    @property
    def passes(self) -> Tuple[DetectionPass, ...]:
        return PASSES if self.enable_preprocessing else PASSES[:1]

    async def detect(self, image_bytes: bytes) -> List[TextRegion]:
        """
        Run all passes concurrently and return the union of their regions.
        Raises AllPassesFailure when every pass failed.
        """
        passes = self.passes
        logger.info(f"[Stage 1] Running {len(passes)} text detection passes")

        outcomes = await asyncio.gather(
            *(self._run_pass(detection_pass, image_bytes) for detection_pass in passes),
            return_exceptions=True
        )

        regions: List[TextRegion] = []
        failures: List[PassRecognitionFailure] = []
        for detection_pass, outcome in zip(passes, outcomes):
            if isinstance(outcome, PassRecognitionFailure):
                logger.error(f"[Stage 1] {outcome}")
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                logger.info(f"[Stage 1] {detection_pass.name}: {len(outcome)} lines")
                regions.extend(outcome)

        if len(failures) == len(passes):
            raise AllPassesFailure(failures)

        logger.info(f"[Stage 1] Detected {len(regions)} raw regions ({len(failures)} passes failed)")
        return regions

    async def _run_pass(self, detection_pass: DetectionPass, image_bytes: bytes) -> List[TextRegion]:
        scale = self.resize_factor if detection_pass.upscaled else 1.0
        try:
            if detection_pass.upscaled:
                data = await asyncio.to_thread(preprocess_image, image_bytes, detection_pass.operations, self.resize_factor)
            else:
                data = image_bytes
            annotation = await self._call_client(data)
            return self.parser.extract_lines(annotation, detection_pass.name, scale)
        except Exception as e:
            raise PassRecognitionFailure(detection_pass.name, e) from e

    async def _call_client(self, data: bytes) -> Any:
        detect_text = self.client.detect_text
        if inspect.iscoroutinefunction(detect_text):
            return await detect_text(data)
        # Blocking clients run in a worker thread
        result = await asyncio.to_thread(detect_text, data)
        if inspect.isawaitable(result):
            result = await result
        return result
