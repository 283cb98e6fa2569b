from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from data_models import Box
from errors import AllPassesFailure
from stages.stage1_multipass import MultiPassTextDetector, TextAnnotationParser

from conftest import FakeTextDetector, lines_annotation, make_png, rect_vertices


def _words_annotation(words):
    return {
        "pages": [{"blocks": [{"paragraphs": [{
            "words": [
                {"text": text, "confidence": conf, "bounding_box": {"vertices": rect_vertices(rect)}}
                for text, conf, rect in words
            ]
        }]}]}]
    }


def test_lines_are_rescaled_to_original_space() -> None:
    annotation = lines_annotation([("x + 2 = 5", 0.9, (10, 10, 100, 20))], scale=2)

    regions = TextAnnotationParser().extract_lines(annotation, "pass_B_enhanced_scan", scale=2)

    assert len(regions) == 1
    assert regions[0].box == Box(10, 10, 100, 20)
    assert regions[0].text == "x + 2 = 5"
    assert regions[0].confidence == 0.9
    assert regions[0].source_pass == "pass_B_enhanced_scan"


def test_words_grouped_into_lines_by_y_tolerance() -> None:
    annotation = _words_annotation([
        ("=", 0.8, (60, 12, 10, 20)),
        ("x", 0.9, (10, 10, 10, 20)),
        ("5", 0.7, (80, 14, 10, 20)),
        ("y", 0.6, (10, 40, 10, 20)),
    ])

    regions = TextAnnotationParser(line_group_tolerance_y=10).extract_lines(annotation, "pass_A_clean_scan")

    assert [r.text for r in regions] == ["x = 5", "y"]
    assert regions[0].confidence == pytest.approx(0.8)
    assert regions[0].box == Box(10, 10, 80, 24)
    assert regions[1].box == Box(10, 40, 10, 20)


def test_word_grouping_tolerance_applies_in_original_space() -> None:
    # 16px apart in a 2x upscaled image is 8px in the original
    annotation = _words_annotation([("a", 0.5, (10, 20, 10, 20)), ("b", 0.5, (40, 36, 10, 20))])

    regions = TextAnnotationParser(line_group_tolerance_y=10).extract_lines(annotation, "p", scale=2)

    assert [r.text for r in regions] == ["a b"]


def test_line_confidence_falls_back_to_word_mean() -> None:
    annotation = {"pages": [{"blocks": [{"paragraphs": [{"lines": [{
        "boundingBox": {"vertices": rect_vertices((0, 0, 50, 20))},
        "words": [{"text": "sin", "confidence": 0.6}, {"text": "x", "confidence": 0.8}],
    }]}]}]}]}

    regions = TextAnnotationParser().extract_lines(annotation, "p")

    assert regions[0].text == "sin x"
    assert regions[0].confidence == pytest.approx(0.7)


def test_missing_vertex_coordinates_default_to_zero() -> None:
    annotation = {"pages": [{"blocks": [{"paragraphs": [{"lines": [{
        "text": "7",
        "confidence": 0.5,
        "boundingBox": {"vertices": [{"x": 5}, {"x": 15, "y": 10}]},
    }]}]}]}]}

    regions = TextAnnotationParser().extract_lines(annotation, "p")

    assert regions[0].box == Box(5, 0, 10, 10)


def test_attribute_style_response() -> None:
    word = SimpleNamespace(
        symbols=[SimpleNamespace(text="4"), SimpleNamespace(text="2")],
        confidence=0.9,
        bounding_box=SimpleNamespace(vertices=[SimpleNamespace(x=0, y=0), SimpleNamespace(x=20, y=10)]),
    )
    annotation = SimpleNamespace(pages=[SimpleNamespace(blocks=[SimpleNamespace(paragraphs=[
        SimpleNamespace(words=[word])
    ])])])

    regions = TextAnnotationParser().extract_lines(annotation, "p")

    assert regions[0].text == "42"
    assert regions[0].box == Box(0, 0, 20, 10)


def test_elements_without_geometry_are_skipped() -> None:
    annotation = {"pages": [{"blocks": [{"paragraphs": [{"lines": [{"text": "ghost", "confidence": 0.9}]}]}]}]}

    assert TextAnnotationParser().extract_lines(annotation, "p") == []


def test_three_passes_run_and_report_original_coordinates() -> None:
    client = FakeTextDetector([("x + 2 = 5", 0.9, (10, 10, 100, 20))], base_width=400)

    regions = asyncio.run(MultiPassTextDetector(client).detect(make_png(400, 200)))

    assert sorted(client.calls) == [(400, 200), (800, 400), (800, 400)]
    assert sorted(r.source_pass for r in regions) == [
        "pass_A_clean_scan", "pass_B_enhanced_scan", "pass_C_aggressive_scan"
    ]
    assert all(r.box == Box(10, 10, 100, 20) for r in regions)


def test_one_failing_pass_does_not_stop_the_others() -> None:
    client = FakeTextDetector(
        [("x + 2 = 5", 0.9, (10, 10, 100, 20))], base_width=400,
        fail_when=lambda image: image.size == (400, 200)
    )

    regions = asyncio.run(MultiPassTextDetector(client).detect(make_png(400, 200)))

    assert len(regions) == 2
    assert "pass_A_clean_scan" not in {r.source_pass for r in regions}


def test_all_passes_failing_raises() -> None:
    client = FakeTextDetector([], base_width=400, fail_when=lambda image: True)

    with pytest.raises(AllPassesFailure) as excinfo:
        asyncio.run(MultiPassTextDetector(client).detect(make_png(400, 200)))

    assert len(excinfo.value.failures) == 3


def test_preprocessing_disabled_runs_clean_pass_only() -> None:
    client = FakeTextDetector([("y", 0.9, (10, 10, 30, 20))], base_width=400)

    regions = asyncio.run(MultiPassTextDetector(client, enable_preprocessing=False).detect(make_png(400, 200)))

    assert client.calls == [(400, 200)]
    assert [r.source_pass for r in regions] == ["pass_A_clean_scan"]


def test_blocking_client_is_supported() -> None:
    class BlockingClient:
        def detect_text(self, image_bytes: bytes):
            return lines_annotation([("1 + 1", 0.8, (0, 0, 40, 20))])

    regions = asyncio.run(MultiPassTextDetector(BlockingClient(), enable_preprocessing=False).detect(make_png()))

    assert [r.text for r in regions] == ["1 + 1"]


def test_passes_are_issued_concurrently() -> None:
    class GatedClient:
        """Each call waits until all three passes have started"""

        def __init__(self) -> None:
            self.started = 0
            self.all_started = asyncio.Event()

        async def detect_text(self, image_bytes: bytes):
            self.started += 1
            if self.started == 3:
                self.all_started.set()
            await asyncio.wait_for(self.all_started.wait(), timeout=2)
            return lines_annotation([("x + 1", 0.9, (10, 10, 50, 20))])

    async def run():
        client = GatedClient()
        regions = await MultiPassTextDetector(client).detect(make_png(400, 200))
        return client, regions

    client, regions = asyncio.run(run())

    assert client.started == 3
    assert len(regions) == 3
