# Stages package
"""
Pipeline stages for recognition and markup.
- Stage 1: Multi-pass text detection
- Stage 2: Cluster merging
- Stage 3: Math region classification
- Stage 4: Math recognition triage
- Stage 5: Result assembly
- Annotation mapping and overlay rendering
"""

from .stage1_multipass import MultiPassTextDetector, TextAnnotationParser
from .stage2_clustering import ClusterMerger
from .stage3_math_detection import MathRegionClassifier, score_math_likeness, is_suspicious
from .stage4_math_triage import MathTriageStage, TriageOutcome
from .stage5_assembly import ResultAssembler
from .annotation_mapper import AnnotationMapper, MappingResult
from .overlay_renderer import OverlayRenderer

__all__ = [
    'MultiPassTextDetector',
    'TextAnnotationParser',
    'ClusterMerger',
    'MathRegionClassifier',
    'score_math_likeness',
    'is_suspicious',
    'MathTriageStage',
    'TriageOutcome',
    'ResultAssembler',
    'AnnotationMapper',
    'MappingResult',
    'OverlayRenderer',
]
