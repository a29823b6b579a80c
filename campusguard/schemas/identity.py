"""
Pydantic schemas for campus identities.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from .enums import Role


class IdentityProfile(BaseModel):
    """Attributes the engine reads from an identity.

    ``degree``, ``branch`` and ``semester`` are the classification tags
    (unit, sub-unit, level) used by alert targeting.
    """

    id: str
    name: str
    enrollment_number: str
    role: Role = Role.STUDENT
    degree: Optional[str] = None
    branch: Optional[str] = None
    semester: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.enrollment_number})"
