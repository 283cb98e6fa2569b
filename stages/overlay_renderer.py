# Overlay Rendering
"""
Burns placed annotations into a copy of the page image.

Geometry may come from a different resolution than the target image, so
boxes are scaled per axis. Tick and cross marks are drawn as hand-drawn
style strokes with random jitter in position, size and rotation; the random
source is injectable so renders are reproducible.
"""

import logging
import math
import random
import textwrap
from typing import Dict, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw

from config import OVERLAY_STYLE
from data_models import Box, PlacedAnnotation
from errors import OverlayRenderFailure
from utils.coordinate_utils import CoordinateConverter
from utils.visualization import get_font

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Glyph strokes in a unit square centered on (0, 0); each variant is a list of polylines
GLYPH_VARIANTS: Dict[str, List[List[List[Point]]]] = {
    'tick': [
        [[(-0.5, 0.05), (-0.15, 0.45), (0.5, -0.45)]],
        [[(-0.45, -0.05), (-0.1, 0.5), (0.45, -0.5)]],
        [[(-0.5, 0.1), (-0.2, 0.35), (-0.1, 0.45), (0.5, -0.4)]],
    ],
    'cross': [
        [[(-0.45, -0.45), (0.45, 0.45)], [(0.45, -0.45), (-0.45, 0.45)]],
        [[(-0.5, -0.4), (0.4, 0.5)], [(0.4, -0.5), (-0.45, 0.4)]],
        [[(-0.4, -0.5), (0.5, 0.4)], [(0.5, -0.4), (-0.4, 0.45)]],
    ],
}

ACTIONS = ('tick', 'cross', 'circle', 'underline', 'comment')

POSITION_JITTER_PX = 3
SIZE_JITTER = 0.2
ROTATION_JITTER_DEG = 15
REASONING_LINE_CHARS = 30


def split_two_lines(text: str, width: int = REASONING_LINE_CHARS) -> List[str]:
    """Break text into at most two lines at a word boundary"""
    text = ' '.join((text or '').split())
    if len(text) <= width:
        return [text] if text else []
    lines = textwrap.wrap(text, width=width)
    if len(lines) <= 2:
        return lines
    return [lines[0], ' '.join(lines[1:])]


def _rotate(points: Sequence[Point], angle_deg: float) -> List[Point]:
    angle = math.radians(angle_deg)
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    return [(x * cos_a - y * sin_a, x * sin_a + y * cos_a) for x, y in points]


def _as_annotation(item: Union[PlacedAnnotation, Dict]) -> PlacedAnnotation:
    if isinstance(item, PlacedAnnotation):
        return item
    return PlacedAnnotation(
        action=item.get('action'),
        box=list(item.get('box') or item.get('bbox') or []),
        text=item.get('text'),
        reasoning=item.get('reasoning'),
        step_id=str(item.get('step_id', '')),
    )


def _source_size(source_dimensions, fallback: Tuple[int, int]) -> Tuple[float, float]:
    if source_dimensions is None:
        return fallback
    if isinstance(source_dimensions, dict):
        return source_dimensions['width'], source_dimensions['height']
    width, height = source_dimensions
    return width, height


class OverlayRenderer:
    """Draw tick, cross, circle, underline and comment marks"""

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None, style: Optional[Dict] = None):
        self.rng = rng if rng is not None else random.Random(seed)
        self.style = style or OVERLAY_STYLE

    def render(self, image: Image.Image, annotations: Sequence[Union[PlacedAnnotation, Dict]],
               source_dimensions=None) -> Image.Image:
        """
        Return a new RGB image with every annotation drawn.
        Raises OverlayRenderFailure on any failure; the input image is untouched.
        """
        try:
            canvas = image.convert('RGB')
            width, height = canvas.size
            src_w, src_h = _source_size(source_dimensions, (width, height))
            if not (src_w and src_h) or src_w <= 0 or src_h <= 0:
                raise ValueError(f"Invalid source dimensions {src_w}x{src_h}")
            scale_x = width / src_w
            scale_y = height / src_h
            font_scale = height / self.style['base_reference_height']

            draw = ImageDraw.Draw(canvas)
            for index, item in enumerate(annotations):
                annotation = _as_annotation(item)
                self._draw_annotation(draw, annotation, scale_x, scale_y, font_scale, index)
        except OverlayRenderFailure:
            raise
        except Exception as e:
            raise OverlayRenderFailure(f"Overlay rendering failed: {e}") from e

        logger.info(f"[Overlay] Rendered {len(annotations)} annotations ({width}x{height})")
        return canvas

    def _draw_annotation(self, draw: ImageDraw.ImageDraw, annotation: PlacedAnnotation,
                         scale_x: float, scale_y: float, font_scale: float, index: int) -> None:
        if annotation.action not in ACTIONS:
            raise OverlayRenderFailure(f"Annotation {index} has unknown action '{annotation.action}'")
        if len(annotation.box) != 4 or not all(math.isfinite(float(v)) for v in annotation.box):
            raise OverlayRenderFailure(f"Annotation {index} has invalid box {annotation.box}")

        box = CoordinateConverter.scale_box(Box(*(float(v) for v in annotation.box)), scale_x, scale_y)
        x, y, w, h = box.to_list()

        if annotation.action in ('tick', 'cross'):
            self._draw_mark(draw, annotation, x, y, w, h, font_scale)
        elif annotation.action == 'circle':
            self._draw_circle(draw, x, y, w, h)
        elif annotation.action == 'underline':
            self._draw_underline(draw, x, y, w, h)
        else:
            self._draw_comment(draw, annotation.text, x, y, font_scale)

    def _font_size(self, key: str, font_scale: float, minimum: int = 12) -> int:
        return max(minimum, round(self.style['font_sizes'][key] * font_scale))

    def _stroke_width(self, w: float, h: float) -> int:
        return max(2, round(min(w, h) * 0.08))

    def _draw_mark(self, draw: ImageDraw.ImageDraw, annotation: PlacedAnnotation,
                   x: float, y: float, w: float, h: float, font_scale: float) -> None:
        """Glyph at the right end of the box, mark code beside it, reasoning underneath"""
        color = self.style['mark_color']
        strokes = self.rng.choice(GLYPH_VARIANTS[annotation.action])
        size = max(20.0, min(h, 120 * max(font_scale, 0.25))) * self.rng.uniform(1 - SIZE_JITTER, 1 + SIZE_JITTER)
        angle = self.rng.uniform(-ROTATION_JITTER_DEG, ROTATION_JITTER_DEG)
        cx = x + w + size / 2 + self.rng.uniform(-POSITION_JITTER_PX, POSITION_JITTER_PX)
        cy = y + h / 2 + self.rng.uniform(-POSITION_JITTER_PX, POSITION_JITTER_PX)
        line_width = max(3, round(size * 0.1))

        for stroke in strokes:
            points = [(cx + px * size, cy + py * size) for px, py in _rotate(stroke, angle)]
            draw.line(points, fill=color, width=line_width, joint='curve')

        text_x = cx + size / 2 + 5
        if annotation.text:
            font_size = self._font_size('mark_code', font_scale)
            font = get_font(font_size)
            draw.text((text_x, cy - font_size / 2), annotation.text, fill=color, font=font)

        if annotation.action == 'cross' and annotation.reasoning:
            font_size = self._font_size('reasoning', font_scale)
            font = get_font(font_size)
            line_y = cy + size / 2 + 4
            for line in split_two_lines(annotation.reasoning):
                draw.text((x, line_y), line, fill=color, font=font)
                line_y += font_size + 4

    def _draw_circle(self, draw: ImageDraw.ImageDraw, x: float, y: float, w: float, h: float) -> None:
        draw.ellipse([x, y, x + w, y + h], outline=self.style['circle_color'], width=self._stroke_width(w, h))

    def _draw_underline(self, draw: ImageDraw.ImageDraw, x: float, y: float, w: float, h: float) -> None:
        line_y = y + h - max(3, h * 0.1)
        draw.line([(x, line_y), (x + w, line_y)], fill=self.style['underline_color'], width=self._stroke_width(w, h))

    def _draw_comment(self, draw: ImageDraw.ImageDraw, text: Optional[str], x: float, y: float,
                      font_scale: float) -> None:
        if not (text or '').strip():
            raise OverlayRenderFailure("Comment annotation has no text")
        font_size = self._font_size('comment', font_scale)
        font = get_font(font_size)
        # Text sits just above the box
        draw.text((x, max(0, y - font_size - 6)), text, fill=self.style['comment_color'], font=font)
