"""
Identity registration and profile updates.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from ..core.errors import ValidationFailed
from ..schemas.enums import Role
from ..schemas.identity import IdentityProfile
from .identity_store import IdentityStore

_logger = logging.getLogger("identities")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def register_identity(
    store: IdentityStore,
    *,
    name: str,
    enrollment_number: str,
    role: Role | str = Role.STUDENT,
    degree: Optional[str] = None,
    branch: Optional[str] = None,
    semester: Optional[int] = None,
    descriptor: Optional[Sequence[float]] = None,
) -> IdentityProfile:
    """
    Create an identity with its enrolled reference descriptor.

    Students need a semester; students and administrators need degree and
    branch. Security personnel carry no classification tags.
    """
    name = _clean(name)
    enrollment_number = _clean(enrollment_number)
    if not name or not enrollment_number:
        raise ValidationFailed("Name and enrollment number are required.")
    try:
        role = Role(role)
    except ValueError as exc:
        raise ValidationFailed("Invalid role specified.") from exc

    degree = _clean(degree)
    branch = _clean(branch)
    if role == Role.STUDENT and semester is None:
        raise ValidationFailed("Semester is required for students.")
    if role in {Role.STUDENT, Role.ADMIN}:
        if not degree:
            raise ValidationFailed("Degree information is required.")
        if not branch:
            raise ValidationFailed("Branch information is required.")

    profile = IdentityProfile(
        id=str(uuid.uuid4()),
        name=name,
        enrollment_number=enrollment_number,
        role=role,
        degree=degree if role != Role.SECURITY else None,
        branch=branch if role != Role.SECURITY else None,
        semester=int(semester) if role == Role.STUDENT else None,
    )
    created = store.add(profile, descriptor)
    if descriptor is None:
        _logger.warning("Identity %s registered without a reference descriptor", created.enrollment_number)
    else:
        _logger.info("Registered identity %s role=%s", created.enrollment_number, created.role.value)
    return created


def update_profile(
    store: IdentityStore,
    identity_id: str,
    *,
    degree: Optional[str] = None,
    branch: Optional[str] = None,
    semester: Optional[int] = None,
) -> IdentityProfile:
    """Change classification tags; unset arguments are left as they are."""
    return store.update_profile(
        identity_id,
        degree=_clean(degree),
        branch=_clean(branch),
        semester=int(semester) if semester is not None else None,
    )
