# Coordinate Utilities
"""
Coordinate conversion and bounding box utilities for the recognition pipeline.
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from data_models import Box, CropRect


class CoordinateConverter:
    """Handle vertex conversion, crop clamping and reading-order sorting"""

    @staticmethod
    def vertices_to_box(vertices: Sequence[Tuple[float, float]], scale: float = 1.0) -> Optional[Box]:
        """Enclosing box of polygon vertices, divided by the pass's resize factor"""
        if not vertices:
            return None
        xs = [x / scale for x, _ in vertices]
        ys = [y / scale for _, y in vertices]
        min_x, min_y = min(xs), min(ys)
        return Box(min_x, min_y, max(xs) - min_x, max(ys) - min_y)

    @staticmethod
    def scale_box(box: Box, scale_x: float, scale_y: float) -> Box:
        """Scale a box independently per axis"""
        return Box(box.min_x * scale_x, box.min_y * scale_y, box.width * scale_x, box.height * scale_y)

    @staticmethod
    def clamp_crop_rect(box: Box, img_width: Optional[int] = None,
                        img_height: Optional[int] = None) -> Optional[CropRect]:
        """
        Convert a box into an integer crop rectangle.
        left/top are clamped to >= 0 and, when image dimensions are given,
        the rectangle is clipped to the image. Returns None when any value is
        non-finite or the resulting width/height is not positive.
        """
        if not box.is_finite():
            return None
        if box.width <= 0 or box.height <= 0:
            return None

        left = max(0, math.floor(box.min_x))
        top = max(0, math.floor(box.min_y))
        right = math.floor(box.max_x)
        bottom = math.floor(box.max_y)
        if img_width is not None:
            right = min(right, img_width)
        if img_height is not None:
            bottom = min(bottom, img_height)

        width = right - left
        height = bottom - top
        if width <= 0 or height <= 0:
            return None
        return CropRect(left=left, top=top, width=width, height=height)

    @staticmethod
    def reading_order(boxes: Iterable[Box], overlap_threshold: float = 0.3) -> List[int]:
        """
        Indices of boxes in reading order.
        Boxes overlapping vertically by at least `overlap_threshold` of either
        box's height are on the same line and ordered left to right; otherwise
        top to bottom.
        """
        boxes = list(boxes)
        order = sorted(range(len(boxes)), key=lambda i: (boxes[i].min_y, boxes[i].min_x))

        lines: List[List[int]] = []
        for idx in order:
            box = boxes[idx]
            for line in lines:
                anchor = boxes[line[0]]
                if CoordinateConverter._same_line(anchor, box, overlap_threshold):
                    line.append(idx)
                    break
            else:
                lines.append([idx])

        result = []
        for line in lines:
            result.extend(sorted(line, key=lambda i: boxes[i].min_x))
        return result

    @staticmethod
    def _same_line(a: Box, b: Box, overlap_threshold: float) -> bool:
        overlap = min(a.max_y, b.max_y) - max(a.min_y, b.min_y)
        if overlap <= 0:
            return False
        a_ratio = overlap / a.height if a.height > 0 else 0.0
        b_ratio = overlap / b.height if b.height > 0 else 0.0
        return a_ratio >= overlap_threshold or b_ratio >= overlap_threshold
