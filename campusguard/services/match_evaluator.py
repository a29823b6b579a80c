"""
Turns a descriptor distance into a match verdict.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from ..core.config import settings
from ..core.errors import ExtractionFailed, ValidationFailed
from .biometrics import BiometricComparator

logger = logging.getLogger("match_evaluator")


@dataclass(frozen=True)
class Verdict:
    """Result of one comparison. ``confidence`` is a percentage in [0, 100]."""
    match: bool
    confidence: float
    distance: float
    threshold: float


@dataclass(frozen=True)
class Indeterminate:
    """No verdict could be formed (no face, missing reference, comparator error)."""
    reason: str


ComparisonResult = Union[Verdict, Indeterminate]


def confidence_from_distance(distance: float) -> float:
    return round(max(0.0, 1.0 - distance) * 100.0, 2)


def evaluate_match(distance: float, threshold: Optional[float] = None) -> Verdict:
    """
    Decide whether ``distance`` is close enough to count as the same face.

    ``match`` is ``distance < threshold``; confidence falls linearly from 100
    at distance 0 to 0 at distance 1 and stays clamped at 0 beyond that.
    """
    if threshold is None:
        threshold = settings.face_match_threshold
    try:
        distance = float(distance)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f"Distance must be a number: {distance!r}") from exc
    if not math.isfinite(distance) or distance < 0:
        raise ValidationFailed(f"Distance must be a finite non-negative number: {distance!r}")
    return Verdict(
        match=distance < threshold,
        confidence=confidence_from_distance(distance),
        distance=distance,
        threshold=threshold,
    )


def compare_and_evaluate(
    comparator: BiometricComparator,
    reference: Optional[Sequence[float]],
    live: Optional[Sequence[float]],
    threshold: Optional[float] = None,
) -> ComparisonResult:
    if reference is None:
        return Indeterminate("no enrolled reference descriptor")
    try:
        distance = comparator.compare(reference, live)
    except ExtractionFailed as exc:
        logger.info("Comparison indeterminate: %s", exc)
        return Indeterminate(str(exc) or "extraction failed")
    except Exception as exc:
        # Comparator crashes are collaborator failures, not failed matches
        logger.warning("Comparator failed: %s", exc)
        return Indeterminate(f"comparator error: {exc}")
    try:
        return evaluate_match(distance, threshold)
    except ValidationFailed as exc:
        logger.warning("Comparator returned unusable distance: %s", exc)
        return Indeterminate(str(exc))
