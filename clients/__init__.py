# Clients package
"""
Adapters for the pipeline's external collaborators.
- Text detection (PaddleOCR, local)
- Specialized math recognition (Mathpix, HTTP)
"""

from .base import MathRecognition, TextDetectionClient, MathRecognitionClient
from .mathpix_client import MathpixClient
from .paddle_text_detector import PaddleTextDetector, PADDLEOCR_AVAILABLE

__all__ = [
    'MathRecognition',
    'TextDetectionClient',
    'MathRecognitionClient',
    'MathpixClient',
    'PaddleTextDetector',
    'PADDLEOCR_AVAILABLE',
]
