"""
Pydantic schemas for alerts and their target specifications.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import AlertCategory, Role, Severity, TargetBucket


class TargetSpec(BaseModel):
    """Who an alert is meant for.

    ``bucket`` is the broad role-derived category. ``degrees``, ``branches``
    and ``semesters`` narrow to students carrying those tags, ``roles`` adds
    whole roles, and ``recipient_ids`` (when non-empty) replaces all of the
    above with an explicit list of identities.
    """

    bucket: Optional[TargetBucket] = None
    degrees: Tuple[str, ...] = ()
    branches: Tuple[str, ...] = ()
    semesters: Tuple[int, ...] = ()
    roles: Tuple[Role, ...] = ()
    recipient_ids: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @field_validator("degrees", "branches", "recipient_ids", mode="before")
    @classmethod
    def _strip_blank(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(v).strip() for v in value if v is not None and str(v).strip())

    @field_validator("semesters", "roles", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        if value is None:
            return ()
        return value

    @property
    def has_override(self) -> bool:
        return bool(self.recipient_ids)

    @property
    def has_tag_filters(self) -> bool:
        return bool(self.degrees or self.branches or self.semesters)

    @property
    def is_degenerate(self) -> bool:
        return self.bucket is None and not self.has_tag_filters and not self.roles and not self.has_override

    @property
    def effective_bucket(self) -> Optional[TargetBucket]:
        if self.is_degenerate:
            return TargetBucket.ALL
        return self.bucket

    @classmethod
    def everyone(cls) -> "TargetSpec":
        return cls(bucket=TargetBucket.ALL)

    @classmethod
    def privileged_staff(cls) -> "TargetSpec":
        return cls(bucket=TargetBucket.ADMINS)


class AlertCreate(BaseModel):
    sender_id: str
    title: str
    message: str
    category: AlertCategory = AlertCategory.GENERAL
    severity: Severity = Severity.MEDIUM
    target: TargetSpec = Field(default_factory=TargetSpec.everyone)
    location: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AlertRecord(AlertCreate):
    id: str
    created_at: datetime

    model_config = ConfigDict(frozen=True)
