from __future__ import annotations

from types import SimpleNamespace

from data_models import AnnotationInstruction, StepGeometry
from errors import AnnotationResolutionFailure
from stages.annotation_mapper import AnnotationMapper

STEPS = [
    {"step_id": "q1a", "bbox": [10, 20, 100, 30]},
    {"stepId": "q1b", "box": {"x": 15, "y": 60, "width": 90, "height": 25}},
    {"globalBlockId": "q2", "position": [5, 100, 50, 20]},
    {"line_id": "q3a", "geometry": {"minX": 40, "minY": 140, "width": 60, "height": 18}},
    {"id": "q4", "coordinates": {"x": "7", "y": "8", "width": "9", "height": "10"}},
]


def test_unmatched_instruction_is_dropped_without_raising() -> None:
    base = [{"step_id": "q1a", "action": "tick"}, {"step_id": "q2", "action": "cross"}]
    with_missing = base + [{"step_id": "q3b", "action": "tick", "text": "M1"}]

    mapper = AnnotationMapper()
    without = mapper.map_annotations(base, STEPS)
    result = mapper.map_annotations(with_missing, STEPS)

    assert len(result.placed) == len(without.placed) == 2
    assert len(result.failures) == 1
    assert isinstance(result.failures[0], AnnotationResolutionFailure)
    assert result.failures[0].step_id == "q3b"


def test_all_known_geometry_shapes_resolve() -> None:
    instructions = [{"step_id": sid, "action": "underline"} for sid in ("q1a", "q1b", "q2", "q3a", "q4")]

    result = AnnotationMapper().map_annotations(instructions, STEPS)

    assert result.failures == []
    assert [p.box for p in result.placed] == [
        [10, 20, 100, 30],
        [15, 60, 90, 25],
        [5, 100, 50, 20],
        [40, 140, 60, 18],
        [7, 8, 9, 10],
    ]


def test_step_id_is_trimmed_and_fields_are_carried() -> None:
    instruction = AnnotationInstruction(step_id="  q1a ", action="cross", text="A0", reasoning="sign error")

    result = AnnotationMapper().map_annotations([instruction], STEPS)

    placed = result.placed[0]
    assert placed.step_id == "q1a"
    assert placed.action == "cross"
    assert placed.text == "A0"
    assert placed.reasoning == "sign error"


def test_non_finite_or_missing_coordinates_are_dropped() -> None:
    steps = [
        {"step_id": "nan", "bbox": [float("nan"), 0, 10, 10]},
        {"step_id": "short", "bbox": [0, 0, 10]},
        {"step_id": "none", "text": "no geometry"},
        {"step_id": "partial", "box": {"x": 1, "y": 2, "width": 3}},
    ]
    instructions = [{"step_id": s["step_id"]} for s in steps]

    result = AnnotationMapper().map_annotations(instructions, steps)

    assert result.placed == []
    assert [f.step_id for f in result.failures] == ["nan", "short", "none", "partial"]


def test_missing_action_defaults_to_comment() -> None:
    result = AnnotationMapper().map_annotations([{"stepId": "q2", "text": "check units"}], STEPS)

    assert result.placed[0].action == "comment"
    assert result.placed[0].text == "check units"


def test_step_records_are_normalised_once() -> None:
    index = AnnotationMapper.index_steps(STEPS + [{"text": "no id"}, {"step_id": "q1a", "bbox": [0, 0, 1, 1]}])

    assert set(index) == {"q1a", "q1b", "q2", "q3a", "q4"}
    assert index["q1a"].box.to_list() == [10, 20, 100, 30]
    assert index["q3a"].shape == "geometry"


def test_attribute_style_step_record() -> None:
    record = SimpleNamespace(step_id="s1", bbox=(1, 2, 3, 4))

    geometry = StepGeometry.from_record(record)

    assert geometry.step_id == "s1"
    assert geometry.box.to_list() == [1, 2, 3, 4]


def test_malformed_entries_do_not_stop_the_batch() -> None:
    instructions = [None, "junk", {"step_id": "q1a", "action": "tick"}, 42, {"step_id": "q2", "action": "circle"}]

    result = AnnotationMapper().map_annotations(instructions, STEPS)

    assert [p.step_id for p in result.placed] == ["q1a", "q2"]
    assert len(result.failures) == 3
    assert all("malformed instruction" in f.reason for f in result.failures)


def test_unparseable_geometry_field_falls_through_to_the_next_shape() -> None:
    steps = [{"step_id": "q1", "bbox": "n/a", "box": {"x": 1, "y": 2, "width": 3, "height": 4}}]

    result = AnnotationMapper().map_annotations([{"step_id": "q1", "action": "tick"}], steps)

    assert result.failures == []
    assert result.placed[0].box == [1, 2, 3, 4]
    assert AnnotationMapper.index_steps(steps)["q1"].shape == "box"


def test_failed_geometry_reports_first_shape_seen() -> None:
    geometry = StepGeometry.from_record({"step_id": "q1", "bbox": "n/a", "box": {"x": 1}})

    assert geometry.box is None
    assert geometry.shape == "bbox"


def test_comment_without_text_is_dropped() -> None:
    result = AnnotationMapper().map_annotations(
        [{"step_id": "q1a", "action": "comment", "text": "  "}, {"step_id": "q2"}], STEPS
    )

    assert result.placed == []
    assert [f.reason for f in result.failures] == ["comment has no text"] * 2
