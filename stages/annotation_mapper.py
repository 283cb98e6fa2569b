# Annotation Mapping
"""
Resolves upstream mark instructions against step geometry.

Step records arrive in several shapes depending on the producer. They are
normalised once into StepGeometry and indexed by id; instructions are then
matched by exact (trimmed) step id. An instruction that cannot be placed is
dropped with a diagnostic, never given a guessed box.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Union

from data_models import AnnotationInstruction, PlacedAnnotation, StepGeometry
from errors import AnnotationResolutionFailure

logger = logging.getLogger(__name__)


@dataclass
class MappingResult:
    placed: List[PlacedAnnotation] = field(default_factory=list)
    failures: List[AnnotationResolutionFailure] = field(default_factory=list)


class AnnotationMapper:
    """Place AnnotationInstructions onto page coordinates"""

    @staticmethod
    def index_steps(step_records: Iterable[Any]) -> Dict[str, StepGeometry]:
        """Normalise step records; the first record seen for an id wins"""
        index: Dict[str, StepGeometry] = {}
        skipped = 0
        for record in step_records or []:
            geometry = StepGeometry.from_record(record)
            if geometry is None:
                skipped += 1
                continue
            index.setdefault(geometry.step_id, geometry)
        if skipped:
            logger.debug(f"[Mapper] {skipped} step records without an id ignored")
        return index

    def map_annotations(self, instructions: Iterable[Union[AnnotationInstruction, Dict]],
                        step_records: Iterable[Any]) -> MappingResult:
        index = self.index_steps(step_records)
        result = MappingResult()

        for raw in instructions or []:
            try:
                result.placed.append(self._place(self._as_instruction(raw), index))
            except AnnotationResolutionFailure as e:
                logger.warning(f"[Mapper] {e}")
                result.failures.append(e)

        logger.info(f"[Mapper] Placed {len(result.placed)} annotations, dropped {len(result.failures)}")
        return result

    @staticmethod
    def _as_instruction(raw: Any) -> AnnotationInstruction:
        if isinstance(raw, AnnotationInstruction):
            return raw
        if not isinstance(raw, dict):
            raise AnnotationResolutionFailure("", f"malformed instruction of type {type(raw).__name__}")
        return AnnotationInstruction.from_dict(raw)

    @staticmethod
    def _place(instruction: AnnotationInstruction, index: Dict[str, StepGeometry]) -> PlacedAnnotation:
        step_id = (instruction.step_id or '').strip()
        if not step_id:
            raise AnnotationResolutionFailure(step_id, "instruction has no step id")

        geometry = index.get(step_id)
        if geometry is None:
            raise AnnotationResolutionFailure(step_id, "no matching step geometry")
        if geometry.box is None:
            raise AnnotationResolutionFailure(
                step_id, f"missing or non-finite coordinates (shape: {geometry.shape})"
            )
        if instruction.action == 'comment' and not (instruction.text or '').strip():
            raise AnnotationResolutionFailure(step_id, "comment has no text")

        return PlacedAnnotation(
            action=instruction.action,
            box=geometry.box.to_list(),
            text=instruction.text,
            reasoning=instruction.reasoning,
            step_id=step_id,
        )
