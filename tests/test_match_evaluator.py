import math

import pytest

from campusguard.core.errors import ExtractionFailed, ValidationFailed
from campusguard.services.biometrics import EuclideanComparator
from campusguard.services.match_evaluator import (
    Indeterminate,
    Verdict,
    compare_and_evaluate,
    evaluate_match,
)


@pytest.mark.parametrize("distance", [0.0, 0.25, 0.5, 0.5999])
def test_below_threshold_is_match(distance):
    assert evaluate_match(distance, threshold=0.6).match is True


@pytest.mark.parametrize("distance", [0.6, 0.61, 0.9, 1.5])
def test_at_or_above_threshold_is_no_match(distance):
    assert evaluate_match(distance, threshold=0.6).match is False


def test_default_threshold_comes_from_settings():
    verdict = evaluate_match(0.59)
    assert verdict.threshold == pytest.approx(0.6)
    assert verdict.match is True


def test_confidence_endpoints_and_clamp():
    assert evaluate_match(0).confidence == 100
    assert evaluate_match(1).confidence == 0
    assert evaluate_match(1.7).confidence == 0
    assert evaluate_match(0.42).confidence == 58.0
    assert evaluate_match(0.1234).confidence == 87.66


def test_confidence_is_non_increasing():
    distances = [i / 20 for i in range(0, 41)]
    confidences = [evaluate_match(d).confidence for d in distances]
    assert all(a >= b for a, b in zip(confidences, confidences[1:]))


def test_evaluate_is_idempotent():
    assert evaluate_match(0.37) == evaluate_match(0.37)


@pytest.mark.parametrize("distance", [-0.1, math.nan, math.inf, "abc"])
def test_invalid_distance_rejected(distance):
    with pytest.raises(ValidationFailed):
        evaluate_match(distance)


def test_euclidean_comparator_distance():
    comparator = EuclideanComparator()
    assert comparator.compare([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)
    assert comparator.compare([0.1, 0.2], [0.1, 0.2]) == 0.0


@pytest.mark.parametrize(
    "reference,live",
    [
        ([0.1, 0.2], None),
        ([0.1, 0.2], []),
        ([0.1, 0.2], [0.1, 0.2, 0.3]),
        ([0.1, math.nan], [0.1, 0.2]),
    ],
)
def test_euclidean_comparator_extraction_failures(reference, live):
    with pytest.raises(ExtractionFailed):
        EuclideanComparator().compare(reference, live)


def test_compare_and_evaluate_returns_verdict():
    result = compare_and_evaluate(EuclideanComparator(), [0.0, 0.0], [0.3, 0.4], threshold=0.6)
    assert isinstance(result, Verdict)
    assert result.match is True
    assert result.distance == pytest.approx(0.5)
    assert result.confidence == 50.0


def test_no_face_is_indeterminate_not_no_match():
    result = compare_and_evaluate(EuclideanComparator(), [0.0, 0.0], None)
    assert isinstance(result, Indeterminate)
    assert "No face detected" in result.reason


def test_missing_reference_is_indeterminate():
    result = compare_and_evaluate(EuclideanComparator(), None, [0.0, 0.0])
    assert isinstance(result, Indeterminate)


def test_comparator_crash_is_indeterminate():
    class _Broken:
        def compare(self, reference, live):
            raise RuntimeError("model service unavailable")

    result = compare_and_evaluate(_Broken(), [0.0], [0.0])
    assert isinstance(result, Indeterminate)
    assert "model service unavailable" in result.reason


def test_unusable_distance_is_indeterminate():
    class _Nan:
        def compare(self, reference, live):
            return math.nan

    assert isinstance(compare_and_evaluate(_Nan(), [0.0], [0.0]), Indeterminate)
