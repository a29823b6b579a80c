"""
Alert audience resolution.

One predicate, ``is_recipient``, decides whether a viewer is part of an
alert's audience. Both the creation-time recipient set and the read-time
feed query are derived from it so the two views can never diverge.
"""

from __future__ import annotations

import logging
from typing import Iterable, Union

from ..schemas.alert import TargetSpec
from ..schemas.enums import Role, TargetBucket
from ..schemas.identity import IdentityProfile

logger = logging.getLogger("audience")


def _bucket_matches(bucket: TargetBucket | None, viewer: IdentityProfile) -> bool:
    if bucket is None:
        return False
    if bucket == TargetBucket.ALL:
        return True
    if bucket == TargetBucket.STUDENTS:
        return viewer.role == Role.STUDENT
    if bucket == TargetBucket.ADMINS:
        return viewer.role.is_privileged
    return False


def _tags_match(spec: TargetSpec, viewer: IdentityProfile) -> bool:
    # Tag lists only ever address regular members; each list is independent
    if viewer.role != Role.STUDENT:
        return False
    if spec.degrees and viewer.degree in spec.degrees:
        return True
    if spec.branches and viewer.branch in spec.branches:
        return True
    if spec.semesters and viewer.semester in spec.semesters:
        return True
    return False


def is_recipient(spec: TargetSpec, viewer: IdentityProfile) -> bool:
    if spec.has_override:
        return viewer.id in spec.recipient_ids
    if _bucket_matches(spec.effective_bucket, viewer):
        return True
    if viewer.role in spec.roles:
        return True
    return _tags_match(spec, viewer)


def resolve_recipients(spec: TargetSpec, population: Iterable[IdentityProfile]) -> list[IdentityProfile]:
    """Every member of ``population`` the alert reaches, in population order."""
    if spec.is_degenerate:
        logger.warning("Degenerate target specification; resolving to everyone")
    return [viewer for viewer in population if is_recipient(spec, viewer)]


def resolve_audience(
    spec: TargetSpec,
    viewer_or_population: Union[IdentityProfile, Iterable[IdentityProfile]],
) -> Union[bool, list[IdentityProfile]]:
    """
    Single-viewer form returns a bool; population form returns the matching
    identities. Both run the same predicate.
    """
    if isinstance(viewer_or_population, IdentityProfile):
        return is_recipient(spec, viewer_or_population)
    return resolve_recipients(spec, viewer_or_population)
