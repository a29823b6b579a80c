"""
Error taxonomy for the verification engine.

Match / no-match and suspicious / not-suspicious are outcomes, not errors.
Everything here is a failure the caller has to decide how to present.
"""

from __future__ import annotations


class CampusGuardError(Exception):
    """Base class for engine failures."""


class ExtractionFailed(CampusGuardError):
    """A comparable descriptor pair could not be produced (indeterminate)."""


class PersistenceFailed(CampusGuardError):
    """Identity or alert state could not be read or written."""


class IdentityNotFound(PersistenceFailed):
    def __init__(self, identity_id: str) -> None:
        super().__init__(f"Identity not found: {identity_id}")
        self.identity_id = identity_id


class ValidationFailed(CampusGuardError, ValueError):
    """Caller supplied input the engine refuses to act on."""
