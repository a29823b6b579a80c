"""
Descriptor comparison.

Descriptors are produced elsewhere (the face model runs outside this
engine); this module only measures how far apart two of them are.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import numpy as np

from ..core.errors import ExtractionFailed


class BiometricComparator(Protocol):
    def compare(self, reference: Sequence[float], live: Optional[Sequence[float]]) -> float:
        """Return the distance between two descriptors or raise ExtractionFailed."""
        ...


def _as_vector(descriptor: Optional[Sequence[float]], label: str) -> np.ndarray:
    if descriptor is None:
        raise ExtractionFailed(f"No face detected in {label} image")
    try:
        vec = np.asarray(descriptor, dtype="float64").reshape(-1)
    except (TypeError, ValueError) as exc:
        raise ExtractionFailed(f"Unreadable {label} descriptor: {exc}") from exc
    if vec.size == 0:
        raise ExtractionFailed(f"Empty {label} descriptor")
    if not np.all(np.isfinite(vec)):
        raise ExtractionFailed(f"Non-finite values in {label} descriptor")
    return vec


class EuclideanComparator:
    """Plain L2 distance, the metric 128-d face descriptors are tuned for."""

    def compare(self, reference: Sequence[float], live: Optional[Sequence[float]]) -> float:
        ref = _as_vector(reference, "reference")
        cur = _as_vector(live, "live")
        if ref.shape != cur.shape:
            raise ExtractionFailed(f"Descriptor size mismatch: {ref.shape[0]} vs {cur.shape[0]}")
        return float(np.linalg.norm(ref - cur))
