"""
Pydantic schemas and enums shared across the CampusGuard engine.
"""

from .enums import AlertCategory, AttemptOutcome, PRIVILEGED_ROLES, Role, Severity, TargetBucket
from .identity import IdentityProfile
from .alert import AlertCreate, AlertRecord, TargetSpec

__all__ = [
    "AlertCategory",
    "AttemptOutcome",
    "PRIVILEGED_ROLES",
    "Role",
    "Severity",
    "TargetBucket",
    "IdentityProfile",
    "AlertCreate",
    "AlertRecord",
    "TargetSpec",
]
