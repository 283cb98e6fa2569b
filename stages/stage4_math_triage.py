# Stage 4: Math Recognition Triage
"""
Decides which math blocks are worth a call to the specialized recognizer
(a rate-limited, paid dependency), crops them, dispatches the calls one at a
time and records the results next to the primary detection.

Per block, in priority order (suspicious first, then highest score):
1. Validate and clamp the crop rectangle; degenerate rectangles are skipped
2. Skip rectangles already seen (same block reported by several passes)
3. Skip the recognizer when the primary confidence is already high
4. Otherwise crop and recognize; failures fall back to the primary text
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image

from clients.base import MathRecognition
from data_models import Box, CropRect, MathBlock
from errors import CropGeometryInvalid, FallbackFailure, SpecializedRecognitionFailure
from utils.coordinate_utils import CoordinateConverter
from utils.image_utils import crop_to_png, encode_png

logger = logging.getLogger(__name__)


@dataclass
class TriageOutcome:
    blocks: List[MathBlock]
    specialized_calls: int = 0
    skipped_invalid: int = 0
    skipped_confident: int = 0
    failed: int = 0
    errors: List[Exception] = field(default_factory=list)


def triage_order(blocks: Sequence[MathBlock]) -> List[MathBlock]:
    """Suspicious blocks first, then by descending math-likeness score"""
    return sorted(blocks, key=lambda b: (not b.suspicious, -b.math_likeness_score))


class MathTriageStage:
    """Stage 4: selective re-recognition of math blocks"""

    def __init__(self, recognizer=None, confidence_threshold: float = 0.9, call_delay_s: float = 0.2,
                 min_block_size: float = 20, max_block_size: float = 2000, sleep=asyncio.sleep):
        self.recognizer = recognizer
        self.confidence_threshold = confidence_threshold
        self.call_delay_s = call_delay_s
        self.min_block_size = min_block_size
        self.max_block_size = max_block_size
        self._sleep = sleep
        self.converter = CoordinateConverter()

    @property
    def available(self) -> bool:
        if self.recognizer is None:
            return False
        is_available = getattr(self.recognizer, 'is_available', None)
        return is_available() if callable(is_available) else True

    def crop_rect(self, block: MathBlock, img_width: int, img_height: int) -> CropRect:
        rect = self.converter.clamp_crop_rect(block.box, img_width, img_height)
        if rect is None:
            raise CropGeometryInvalid(f"Invalid crop geometry {block.box.to_list()}")
        return rect

    def _size_ok(self, block: MathBlock) -> bool:
        box = block.box
        return (self.min_block_size <= box.width <= self.max_block_size and
                self.min_block_size <= box.height <= self.max_block_size)

    async def run(self, blocks: Sequence[MathBlock], image: Image.Image) -> TriageOutcome:
        """Process blocks in triage order; the returned blocks keep that order"""
        queue = triage_order(blocks)
        outcome = TriageOutcome(blocks=queue)
        if not queue:
            return outcome
        if not self.available:
            logger.info("[Stage 4] Specialized recognizer unavailable - using primary text for all blocks")
            return outcome

        img_width, img_height = image.size
        seen: Dict[str, Tuple[Optional[str], Optional[float]]] = {}
        logger.info(f"[Stage 4] Triage of {len(queue)} math blocks")

        for i, block in enumerate(queue):
            try:
                rect = self.crop_rect(block, img_width, img_height)
            except CropGeometryInvalid as e:
                logger.warning(f"[Stage 4] Skipping math block {i + 1}: {e}")
                outcome.skipped_invalid += 1
                outcome.errors.append(e)
                continue

            if rect.signature in seen:
                block.specialized_text, block.specialized_confidence = seen[rect.signature]
                logger.debug(f"[Stage 4] Block {i + 1} duplicates crop {rect.signature}")
                continue

            if block.confidence >= self.confidence_threshold:
                # Primary text is trusted as-is
                outcome.skipped_confident += 1
                seen[rect.signature] = (None, None)
                continue

            if not self._size_ok(block):
                logger.debug(f"[Stage 4] Block {i + 1} outside size bounds {block.box.to_list()}")
                seen[rect.signature] = (None, None)
                continue

            if outcome.specialized_calls > 0 and self.call_delay_s > 0:
                await self._sleep(self.call_delay_s)

            outcome.specialized_calls += 1
            try:
                recognition = await self._recognize(crop_to_png(image, rect))
                block.specialized_text = recognition.text
                block.specialized_confidence = recognition.confidence
            except SpecializedRecognitionFailure as e:
                logger.warning(f"[Stage 4] Math block {i + 1}: {e} - using primary text")
                outcome.failed += 1
                outcome.errors.append(e)
            seen[rect.signature] = (block.specialized_text, block.specialized_confidence)

        logger.info(
            f"[Stage 4] {outcome.specialized_calls} specialized calls, "
            f"{outcome.skipped_confident} confident skips, {outcome.skipped_invalid} invalid, "
            f"{outcome.failed} failed"
        )
        return outcome

    async def recognize_whole_image(self, image: Image.Image) -> MathBlock:
        """
        Fallback when every detection pass failed: one block spanning the
        whole image, recognized directly. Raises FallbackFailure.
        """
        if not self.available:
            raise FallbackFailure("No specialized recognizer available for whole-image fallback")

        width, height = image.size
        logger.info(f"[Stage 4] Whole-image fallback ({width}x{height})")
        try:
            recognition = await self._recognize(encode_png(image))
        except SpecializedRecognitionFailure as e:
            raise FallbackFailure(f"Whole-image fallback failed: {e}") from e

        return MathBlock(
            text='',
            confidence=0.0,
            box=Box(0, 0, width, height),
            math_likeness_score=1.0,
            specialized_text=recognition.text,
            specialized_confidence=recognition.confidence,
            sources=['whole_image_fallback']
        )

    async def _recognize(self, image_bytes: bytes) -> MathRecognition:
        """Call the recognizer; any error or unusable result is a SpecializedRecognitionFailure"""
        try:
            result = self.recognizer.recognize(image_bytes)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise SpecializedRecognitionFailure(f"recognizer error: {e}") from e

        if isinstance(result, dict):
            result = MathRecognition(
                text=result.get('latex_styled') or result.get('text'),
                confidence=result.get('confidence'),
                error=result.get('error'),
            )
        if not isinstance(result, MathRecognition) or not result.usable:
            reason = getattr(result, 'error', None) or 'no usable text'
            raise SpecializedRecognitionFailure(f"recognizer returned {reason}")
        return result
