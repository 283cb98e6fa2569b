from __future__ import annotations

import pytest

from data_models import Box, MergedRegion
from stages.stage3_math_detection import (
    MATH_FEATURES,
    MathRegionClassifier,
    is_suspicious,
    matched_features,
    score_math_likeness,
)


def _region(text: str) -> MergedRegion:
    return MergedRegion(text=text, confidence=0.8, box=Box(0, 0, 100, 30))


@pytest.mark.parametrize("threshold", [0.0, 0.1, 0.35, 0.5, 1.0])
def test_plain_word_never_becomes_math_block(threshold: float) -> None:
    assert MathRegionClassifier(threshold).classify([_region("The")]) == []


def test_stoplist_phrase_scores_zero() -> None:
    assert score_math_likeness("find the answer") == 0.0
    assert score_math_likeness("The") == 0.0
    assert score_math_likeness("") == 0.0


def test_simple_equation_score() -> None:
    assert sorted(matched_features("x + 2 = 5")) == ["arithmetic", "comparison", "digits"]
    assert score_math_likeness("x + 2 = 5") == pytest.approx(0.3)


def test_score_adds_one_tenth_per_feature_class() -> None:
    assert score_math_likeness("2") == pytest.approx(0.1)
    assert score_math_likeness("2+") == pytest.approx(0.2)
    assert score_math_likeness("2+=") == pytest.approx(0.3)
    assert score_math_likeness("solve 2x^2 + 3 = 11") == pytest.approx(0.5)


def test_score_is_capped_at_one() -> None:
    text = "solve |x| + sin(θ^2) = ∞ and 3"
    assert len(matched_features(text)) == len(MATH_FEATURES)
    assert score_math_likeness(text) == 1.0


@pytest.mark.parametrize("text", [
    "x", "1", "y = mx + c", "∫ f(x) dx", "lim x→∞", "Let a and b be integers",
    "|x - 3| < 2", "hello world", "α + β = γ", "(a + b)^2 = a^2 + 2ab + b^2",
])
def test_score_always_in_unit_interval(text: str) -> None:
    assert 0.0 <= score_math_likeness(text) <= 1.0


def test_score_non_decreasing_as_features_are_added() -> None:
    texts = ["3", "3 + x", "3 + x = 7", "3 + x = 7 (check)", "solve 3 + x = 7 (check)"]
    scores = [score_math_likeness(t) for t in texts]
    assert scores == sorted(scores)


def test_suspicious_single_pipe() -> None:
    assert is_suspicious("|x + 2 = 5")
    assert not is_suspicious("|x| + 2 = 5")


def test_suspicious_operators_without_digits() -> None:
    assert is_suspicious("a + b - c * d")
    assert not is_suspicious("a + b")
    assert not is_suspicious("1 + 2 - 3 * 4")


def test_classifier_threshold() -> None:
    regions = [_region("x + 2 = 5"), _region("The answer"), _region("solve 2x^2 + 3 = 11")]

    default_blocks = MathRegionClassifier().classify(regions)
    low_blocks = MathRegionClassifier(threshold=0.1).classify(regions)

    assert [b.text for b in default_blocks] == ["solve 2x^2 + 3 = 11"]
    assert [b.text for b in low_blocks] == ["x + 2 = 5", "solve 2x^2 + 3 = 11"]
    assert low_blocks[0].math_likeness_score == pytest.approx(0.3)
    assert low_blocks[0].confidence == 0.8


def test_classifier_flags_suspicious_blocks() -> None:
    blocks = MathRegionClassifier(threshold=0.1).classify([_region("|x + 2 = 5")])

    assert len(blocks) == 1
    assert blocks[0].suspicious
