"""
Identity stores: profile lookup, enrolled descriptors and attempt history.

``append_attempt`` is atomic per identity and returns the history as it
stands right after the append, so the caller analyzes exactly the sequence
its own write produced.
"""

from __future__ import annotations

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import IdentityNotFound, PersistenceFailed, ValidationFailed
from ..models.campus_user import CampusUser
from ..models.verification_attempt import VerificationAttempt
from ..schemas.enums import Role
from ..schemas.identity import IdentityProfile
from .attempt_history import AttemptRecord, append_attempt, as_utc

logger = logging.getLogger("identity_store")


class IdentityStore:
    def get(self, identity_id: str) -> IdentityProfile:
        raise NotImplementedError

    def get_by_enrollment(self, enrollment_number: str) -> IdentityProfile:
        raise NotImplementedError

    def list(
        self,
        *,
        role: Optional[Role] = None,
        degree: Optional[str] = None,
        branch: Optional[str] = None,
        semester: Optional[int] = None,
    ) -> list[IdentityProfile]:
        raise NotImplementedError

    def add(self, profile: IdentityProfile, descriptor: Optional[Sequence[float]] = None) -> IdentityProfile:
        raise NotImplementedError

    def update_profile(self, identity_id: str, **tags) -> IdentityProfile:
        raise NotImplementedError

    def reference_descriptor(self, identity_id: str) -> Optional[list[float]]:
        raise NotImplementedError

    def history(self, identity_id: str) -> tuple[AttemptRecord, ...]:
        raise NotImplementedError

    def append_attempt(self, identity_id: str, record: AttemptRecord) -> tuple[AttemptRecord, ...]:
        raise NotImplementedError

    def purge_attempts_before(self, identity_id: str, cutoff: datetime.datetime) -> int:
        raise NotImplementedError


_TAG_FIELDS = ("degree", "branch", "semester")


def _check_tags(tags: dict) -> dict:
    unknown = set(tags) - set(_TAG_FIELDS)
    if unknown:
        raise ValidationFailed(f"Only classification tags can be updated, got: {', '.join(sorted(unknown))}")
    return {k: v for k, v in tags.items() if v is not None}


def _matches_filter(
    profile: IdentityProfile,
    role: Optional[Role],
    degree: Optional[str],
    branch: Optional[str],
    semester: Optional[int],
) -> bool:
    if role is not None and profile.role != role:
        return False
    if degree is not None and profile.degree != degree:
        return False
    if branch is not None and profile.branch != branch:
        return False
    if semester is not None and profile.semester != semester:
        return False
    return True


@dataclass
class _MemoryEntry:
    profile: IdentityProfile
    descriptor: Optional[list[float]] = None
    attempts: tuple[AttemptRecord, ...] = field(default_factory=tuple)


class InMemoryIdentityStore(IdentityStore):
    """Thread-safe store for tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _MemoryEntry] = {}

    def _entry(self, identity_id: str) -> _MemoryEntry:
        entry = self._entries.get(identity_id)
        if entry is None:
            raise IdentityNotFound(identity_id)
        return entry

    def get(self, identity_id: str) -> IdentityProfile:
        with self._lock:
            return self._entry(identity_id).profile

    def get_by_enrollment(self, enrollment_number: str) -> IdentityProfile:
        with self._lock:
            for entry in self._entries.values():
                if entry.profile.enrollment_number == enrollment_number:
                    return entry.profile
        raise IdentityNotFound(enrollment_number)

    def list(self, *, role=None, degree=None, branch=None, semester=None) -> list[IdentityProfile]:
        with self._lock:
            items = [
                e.profile
                for e in self._entries.values()
                if _matches_filter(e.profile, role, degree, branch, semester)
            ]
        return sorted(items, key=lambda p: p.name)

    def add(self, profile: IdentityProfile, descriptor: Optional[Sequence[float]] = None) -> IdentityProfile:
        with self._lock:
            if profile.id in self._entries:
                raise ValidationFailed(f"Identity already exists: {profile.id}")
            if any(e.profile.enrollment_number == profile.enrollment_number for e in self._entries.values()):
                raise ValidationFailed(f"Enrollment number already registered: {profile.enrollment_number}")
            self._entries[profile.id] = _MemoryEntry(
                profile=profile,
                descriptor=[float(x) for x in descriptor] if descriptor is not None else None,
            )
        return profile

    def update_profile(self, identity_id: str, **tags) -> IdentityProfile:
        changes = _check_tags(tags)
        with self._lock:
            entry = self._entry(identity_id)
            entry.profile = entry.profile.model_copy(update=changes)
            return entry.profile

    def reference_descriptor(self, identity_id: str) -> Optional[list[float]]:
        with self._lock:
            descriptor = self._entry(identity_id).descriptor
            return list(descriptor) if descriptor is not None else None

    def history(self, identity_id: str) -> tuple[AttemptRecord, ...]:
        with self._lock:
            return self._entry(identity_id).attempts

    def append_attempt(self, identity_id: str, record: AttemptRecord) -> tuple[AttemptRecord, ...]:
        with self._lock:
            entry = self._entry(identity_id)
            entry.attempts = append_attempt(entry.attempts, record)
            return entry.attempts

    def purge_attempts_before(self, identity_id: str, cutoff: datetime.datetime) -> int:
        cutoff = as_utc(cutoff)
        with self._lock:
            entry = self._entry(identity_id)
            kept = tuple(r for r in entry.attempts if r.timestamp >= cutoff)
            removed = len(entry.attempts) - len(kept)
            entry.attempts = kept
            return removed


def _to_profile(row: CampusUser) -> IdentityProfile:
    return IdentityProfile.model_validate(row)


def _to_record(row: VerificationAttempt) -> AttemptRecord:
    return AttemptRecord(
        timestamp=row.occurred_at,
        outcome=row.outcome,
        confidence=row.confidence,
        distance=row.distance,
    )


class SqlIdentityStore(IdentityStore):
    """
    SQLAlchemy-backed store. Every call runs in its own session; SQLAlchemy
    errors surface as ``PersistenceFailed``.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _run(self, action: str, fn):
        db = self._session_factory()
        try:
            return fn(db)
        except (IdentityNotFound, ValidationFailed):
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Identity store %s failed: %s", action, exc)
            raise PersistenceFailed(f"Identity store {action} failed: {exc}") from exc
        finally:
            db.close()

    @staticmethod
    def _load(db: Session, identity_id: str, *, for_update: bool = False) -> CampusUser:
        stmt = select(CampusUser).where(CampusUser.id == identity_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = db.execute(stmt).scalar_one_or_none()
        if row is None:
            raise IdentityNotFound(identity_id)
        return row

    @staticmethod
    def _history(db: Session, identity_id: str) -> tuple[AttemptRecord, ...]:
        rows = db.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.user_id == identity_id)
            .order_by(VerificationAttempt.occurred_at.asc(), VerificationAttempt.seq.asc())
        ).scalars()
        return tuple(_to_record(r) for r in rows)

    def get(self, identity_id: str) -> IdentityProfile:
        return self._run("get", lambda db: _to_profile(self._load(db, identity_id)))

    def get_by_enrollment(self, enrollment_number: str) -> IdentityProfile:
        def _get(db: Session) -> IdentityProfile:
            row = db.execute(
                select(CampusUser).where(CampusUser.enrollment_number == enrollment_number)
            ).scalar_one_or_none()
            if row is None:
                raise IdentityNotFound(enrollment_number)
            return _to_profile(row)

        return self._run("get_by_enrollment", _get)

    def list(self, *, role=None, degree=None, branch=None, semester=None) -> list[IdentityProfile]:
        def _list(db: Session) -> list[IdentityProfile]:
            stmt = select(CampusUser)
            if role is not None:
                stmt = stmt.where(CampusUser.role == Role(role).value)
            if degree is not None:
                stmt = stmt.where(CampusUser.degree == degree)
            if branch is not None:
                stmt = stmt.where(CampusUser.branch == branch)
            if semester is not None:
                stmt = stmt.where(CampusUser.semester == semester)
            rows = db.execute(stmt.order_by(CampusUser.name.asc())).scalars()
            return [_to_profile(r) for r in rows]

        return self._run("list", _list)

    def add(self, profile: IdentityProfile, descriptor: Optional[Sequence[float]] = None) -> IdentityProfile:
        def _add(db: Session) -> IdentityProfile:
            row = CampusUser(
                id=profile.id or str(uuid.uuid4()),
                name=profile.name,
                enrollment_number=profile.enrollment_number,
                role=profile.role.value,
                degree=profile.degree,
                branch=profile.branch,
                semester=profile.semester,
                reference_descriptor=[float(x) for x in descriptor] if descriptor is not None else None,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationFailed(
                    f"Identity or enrollment number already registered: {profile.enrollment_number}"
                ) from exc
            db.refresh(row)
            return _to_profile(row)

        return self._run("add", _add)

    def update_profile(self, identity_id: str, **tags) -> IdentityProfile:
        changes = _check_tags(tags)

        def _update(db: Session) -> IdentityProfile:
            row = self._load(db, identity_id)
            for key, value in changes.items():
                setattr(row, key, value)
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_profile(row)

        return self._run("update_profile", _update)

    def reference_descriptor(self, identity_id: str) -> Optional[list[float]]:
        def _descriptor(db: Session) -> Optional[list[float]]:
            row = self._load(db, identity_id)
            return list(row.reference_descriptor) if row.reference_descriptor is not None else None

        return self._run("reference_descriptor", _descriptor)

    def history(self, identity_id: str) -> tuple[AttemptRecord, ...]:
        def _read(db: Session) -> tuple[AttemptRecord, ...]:
            self._load(db, identity_id)
            return self._history(db, identity_id)

        return self._run("history", _read)

    def append_attempt(self, identity_id: str, record: AttemptRecord) -> tuple[AttemptRecord, ...]:
        def _append(db: Session) -> tuple[AttemptRecord, ...]:
            # Row lock serializes concurrent appends for the same identity across processes
            self._load(db, identity_id, for_update=True)
            db.add(
                VerificationAttempt(
                    user_id=identity_id,
                    occurred_at=record.timestamp,
                    outcome=record.outcome.value,
                    confidence=record.confidence,
                    distance=record.distance,
                )
            )
            db.flush()
            history = self._history(db, identity_id)
            db.commit()
            return history

        return self._run("append_attempt", _append)

    def purge_attempts_before(self, identity_id: str, cutoff: datetime.datetime) -> int:
        def _purge(db: Session) -> int:
            self._load(db, identity_id, for_update=True)
            result = db.execute(
                delete(VerificationAttempt).where(
                    VerificationAttempt.user_id == identity_id,
                    VerificationAttempt.occurred_at < as_utc(cutoff),
                )
            )
            db.commit()
            return int(result.rowcount or 0)

        return self._run("purge_attempts_before", _purge)
