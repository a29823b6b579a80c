"""
Verification attempt records and helpers over an identity's history.

A history is an ordered, append-only sequence of immutable records. Old
records are never decayed in place; windows are always recomputed against
the current time.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..schemas.enums import AttemptOutcome


def as_utc(ts: datetime.datetime) -> datetime.datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class AttemptRecord:
    timestamp: datetime.datetime
    outcome: AttemptOutcome
    confidence: float
    distance: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        object.__setattr__(self, "outcome", AttemptOutcome(self.outcome))

    @property
    def is_failure(self) -> bool:
        return self.outcome == AttemptOutcome.NO_MATCH

    @classmethod
    def from_verdict(cls, verdict, at: datetime.datetime) -> "AttemptRecord":
        return cls(
            timestamp=at,
            outcome=AttemptOutcome.MATCH if verdict.match else AttemptOutcome.NO_MATCH,
            confidence=verdict.confidence,
            distance=verdict.distance,
        )


def append_attempt(history: Sequence[AttemptRecord], record: AttemptRecord) -> tuple[AttemptRecord, ...]:
    """Return a new history with ``record`` at the end."""
    return tuple(history) + (record,)


def within_window(
    history: Iterable[AttemptRecord],
    now: datetime.datetime,
    window: datetime.timedelta,
) -> list[AttemptRecord]:
    """Records whose age is strictly less than ``window``."""
    now = as_utc(now)
    return [r for r in history if now - r.timestamp < window]


def retention_cutoff(now: datetime.datetime, retention_minutes: int) -> Optional[datetime.datetime]:
    """Oldest timestamp worth keeping, or None when history is kept forever."""
    if retention_minutes <= 0:
        return None
    return as_utc(now) - datetime.timedelta(minutes=retention_minutes)
