# Pipeline Errors
"""
Error taxonomy for the recognition and markup pipeline.

Failures local to one unit of work (one pass, one block, one annotation) are
caught and logged by the stage that owns the unit. Failures that exhaust every
fallback for the whole pipeline are raised to the caller.
"""

from typing import List, Optional


class OCRPipelineError(Exception):
    """Base error for recognition and markup failures."""


class PassRecognitionFailure(OCRPipelineError):
    """One detection pass failed. Non-fatal."""

    def __init__(self, pass_name: str, cause: Optional[BaseException] = None):
        self.pass_name = pass_name
        self.cause = cause
        super().__init__(f"{pass_name} failed: {cause}")


class AllPassesFailure(OCRPipelineError):
    """Every detection pass failed."""

    def __init__(self, failures: List[PassRecognitionFailure]):
        self.failures = failures
        names = ", ".join(f.pass_name for f in failures)
        super().__init__(f"All text detection passes failed ({names})")


class FallbackFailure(OCRPipelineError):
    """The whole-image specialized fallback failed after all passes failed."""


class CropGeometryInvalid(OCRPipelineError):
    """A math block's crop rectangle is degenerate or non-finite."""


class SpecializedRecognitionFailure(OCRPipelineError):
    """The math recognizer errored or returned no usable text."""


class AnnotationResolutionFailure(OCRPipelineError):
    """An instruction could not be matched to step geometry."""

    def __init__(self, step_id: str, reason: str):
        self.step_id = step_id
        self.reason = reason
        super().__init__(f"Annotation for step '{step_id}' dropped: {reason}")


class OverlayRenderFailure(OCRPipelineError):
    """Burning annotations into the image failed."""


class DetectorUnavailable(OCRPipelineError):
    """No text detection client is configured (e.g. paddleocr is not installed)."""
