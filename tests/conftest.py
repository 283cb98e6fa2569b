from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from clients.base import MathRecognition  # noqa: E402

Rect = Tuple[float, float, float, float]


def make_png(width: int = 400, height: int = 200, color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, "PNG")
    return buffer.getvalue()


def rect_vertices(rect: Rect, scale: float = 1.0) -> List[Dict[str, float]]:
    x, y, w, h = rect
    return [
        {"x": x * scale, "y": y * scale},
        {"x": (x + w) * scale, "y": y * scale},
        {"x": (x + w) * scale, "y": (y + h) * scale},
        {"x": x * scale, "y": (y + h) * scale},
    ]


def lines_annotation(lines: List[Tuple[str, float, Rect]], scale: float = 1.0) -> Dict:
    """Full-text structure with one paragraph holding the given lines"""
    return {
        "pages": [{
            "blocks": [{
                "paragraphs": [{
                    "lines": [
                        {"text": text, "confidence": conf, "boundingBox": {"vertices": rect_vertices(rect, scale)}}
                        for text, conf, rect in lines
                    ]
                }]
            }]
        }]
    }


class FakeTextDetector:
    """Reports fixed lines, scaled to whatever image size it receives"""

    def __init__(self, lines: List[Tuple[str, float, Rect]], base_width: int,
                 fail_when: Optional[Callable[[Image.Image], bool]] = None) -> None:
        self.lines = lines
        self.base_width = base_width
        self.fail_when = fail_when
        self.calls: List[Tuple[int, int]] = []

    async def detect_text(self, image_bytes: bytes) -> Dict:
        image = Image.open(io.BytesIO(image_bytes))
        self.calls.append(image.size)
        if self.fail_when is not None and self.fail_when(image):
            raise RuntimeError("detector unavailable")
        return lines_annotation(self.lines, scale=image.size[0] / self.base_width)


class FakeRecognizer:
    """Specialized recognizer returning queued responses (last one repeats)"""

    def __init__(self, responses: Optional[List[object]] = None) -> None:
        self.responses = responses or [MathRecognition(text="x+2=5", confidence=0.97)]
        self.calls: List[Tuple[int, int]] = []

    async def recognize(self, image_bytes: bytes) -> MathRecognition:
        image = Image.open(io.BytesIO(image_bytes))
        self.calls.append(image.size)
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
