"""
Closed value sets shared by the engine, the stores and the ORM models.

Values are the strings persisted in the database.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    SECURITY = "security"

    @property
    def is_privileged(self) -> bool:
        return self in PRIVILEGED_ROLES


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.SECURITY})


class AlertCategory(str, Enum):
    GENERAL = "general"
    EMERGENCY = "emergency"
    SOS = "sos"
    FACE_MISMATCH = "face_mismatch"


_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class TargetBucket(str, Enum):
    ALL = "all"
    STUDENTS = "students"
    ADMINS = "admins"


class AttemptOutcome(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
