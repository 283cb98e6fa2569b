# Data Models package
"""
Data models for the recognition and markup pipeline.
Contains dataclasses for boxes, regions, math blocks, results and annotations.
"""

from .schemas import (
    Box,
    TextRegion,
    MergedRegion,
    MathBlock,
    CropRect,
    OCRResult,
    AnnotationInstruction,
    StepGeometry,
    PlacedAnnotation,
)

__all__ = [
    'Box',
    'TextRegion',
    'MergedRegion',
    'MathBlock',
    'CropRect',
    'OCRResult',
    'AnnotationInstruction',
    'StepGeometry',
    'PlacedAnnotation',
]
