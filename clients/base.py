# Collaborator Interfaces
"""
Interfaces of the two external collaborators the pipeline calls:
a text detector returning a page→block→paragraph→(line)→word→symbol
structure, and a specialized math recognizer for cropped regions.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class MathRecognition:
    """Response of the specialized math recognizer"""
    text: Optional[str] = None  # LaTeX-like markup
    confidence: Optional[float] = None
    error: Optional[str] = None  # Explicit error payload from the provider

    @property
    def usable(self) -> bool:
        return self.error is None and bool(self.text and self.text.strip())


class TextDetectionClient(Protocol):
    """Detect text in raw image bytes.

    Returns the hierarchical full-text structure (dicts with camelCase or
    snake_case keys, or attribute objects). May be a coroutine function.
    """

    def detect_text(self, image_bytes: bytes) -> Any:
        ...


class MathRecognitionClient(Protocol):
    """Recognize the mathematical content of a cropped image"""

    async def recognize(self, image_bytes: bytes) -> MathRecognition:
        ...
