# Stage 5: Result Assembly
"""
Builds the final OCRResult from the triaged math blocks.
Blocks are emitted in reading order; every returned coordinate is in the
original image's pixel space.
"""

import logging
import time
from typing import List, Optional, Sequence

from data_models import MathBlock, OCRResult, TextRegion
from utils.coordinate_utils import CoordinateConverter

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Stage 5: aggregate text, boxes and confidence"""

    def __init__(self, same_line_overlap: float = 0.3):
        self.same_line_overlap = same_line_overlap
        self.converter = CoordinateConverter()

    def order_blocks(self, blocks: Sequence[MathBlock]) -> List[MathBlock]:
        indices = self.converter.reading_order([b.box for b in blocks], self.same_line_overlap)
        return [blocks[i] for i in indices]

    def assemble(self, blocks: Sequence[MathBlock], width: int, height: int,
                 start_time: Optional[float] = None, specialized_calls: int = 0,
                 pre_cluster_regions: Optional[Sequence[TextRegion]] = None) -> OCRResult:
        ordered = self.order_blocks(list(blocks))

        bounding_boxes = []
        for block in ordered:
            entry = {'text': block.resolved_text}
            entry.update(block.box.to_dict())
            entry['confidence'] = block.resolved_confidence
            bounding_boxes.append(entry)

        confidences = [block.resolved_confidence for block in ordered]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        processing_time_ms = (time.time() - start_time) * 1000 if start_time is not None else 0.0

        result = OCRResult(
            text='\n'.join(block.resolved_text for block in ordered),
            bounding_boxes=bounding_boxes,
            confidence=confidence,
            width=width,
            height=height,
            math_blocks=ordered,
            processing_time_ms=round(processing_time_ms, 1),
            specialized_calls=specialized_calls,
            pre_cluster_regions=list(pre_cluster_regions or []),
        )
        logger.info(f"[Stage 5] Assembled {len(ordered)} blocks (confidence {confidence:.3f})")
        return result
