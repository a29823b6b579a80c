"""
Suspicious-activity analysis over an identity's attempt history.

Repeated failed verifications inside a short trailing window look like
someone presenting another person's identity rather than camera noise.
The window slides continuously: it is evaluated fresh against ``now`` on
every call and no reset is ever written back.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..core.config import settings
from .attempt_history import AttemptRecord, within_window

logger = logging.getLogger("suspicion")


@dataclass(frozen=True)
class SuspicionResult:
    is_suspicious: bool
    attempt_count: int
    window_minutes: int
    last_attempt: Optional[AttemptRecord] = None


def analyze(
    history: Sequence[AttemptRecord],
    now: datetime.datetime,
    window_minutes: Optional[int] = None,
    threshold: Optional[int] = None,
) -> SuspicionResult:
    """
    Classify the current behaviour of one identity.

    Parameters
    ----------
    history: Sequence[AttemptRecord]
        Full attempt history, oldest first.
    now: datetime.datetime
        Evaluation time. Naive values are read as UTC.
    window_minutes: int
        Trailing window length; defaults to ``SUSPICION_WINDOW_MINUTES``.
    threshold: int
        Failures inside the window needed to be suspicious; defaults to
        ``SUSPICION_THRESHOLD``.

    Returns
    -------
    SuspicionResult
        ``attempt_count`` counts no-match records younger than the window.
    """
    if window_minutes is None:
        window_minutes = settings.suspicion_window_minutes
    if threshold is None:
        threshold = settings.suspicion_threshold
    history = tuple(history)

    recent = within_window(history, now, datetime.timedelta(minutes=window_minutes))
    failures = sum(1 for r in recent if r.is_failure)
    result = SuspicionResult(
        is_suspicious=failures >= threshold,
        attempt_count=failures,
        window_minutes=window_minutes,
        last_attempt=history[-1] if history else None,
    )
    logger.debug(
        "Analyzed history size=%s failures_in_window=%s window_min=%s suspicious=%s",
        len(history),
        failures,
        window_minutes,
        result.is_suspicious,
    )
    return result
