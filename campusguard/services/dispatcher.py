"""
Alert dispatcher: verification outcome handling and alert creation.

One verification event runs

    EVALUATE -> MATCH: done
             -> NO_MATCH: RECORD_ATTEMPT -> ANALYZE -> NOT_SUSPICIOUS: done
                                                    -> SUSPICIOUS: EMIT_ESCALATION_ALERT -> done

with the failed attempt recorded exactly once per call. Indeterminate
comparisons record nothing. Persistence failures propagate to the caller
as ``PersistenceFailed``.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union

from ..core.config import Settings, settings as default_settings
from ..core.errors import ValidationFailed
from ..core.locks import KeyedLock
from ..schemas.alert import AlertCreate, AlertRecord, TargetSpec
from ..schemas.enums import AlertCategory, PRIVILEGED_ROLES, Role, Severity, TargetBucket
from ..schemas.identity import IdentityProfile
from .alert_store import AlertStore
from .attempt_history import AttemptRecord, as_utc, retention_cutoff, utc_now
from .audience import resolve_recipients
from .biometrics import BiometricComparator
from .identity_store import IdentityStore
from .match_evaluator import ComparisonResult, Indeterminate, compare_and_evaluate
from .suspicion import SuspicionResult, analyze

logger = logging.getLogger("dispatcher")

ESCALATION_TITLE = "Face Recognition Mismatch Alert"
SOS_DEFAULT_LOCATION = "Location not provided"


@dataclass(frozen=True)
class DispatchResult:
    recorded: bool
    escalated: bool
    alert: Optional[AlertRecord] = None
    suspicion: Optional[SuspicionResult] = None
    indeterminate: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class VerificationOutcome:
    """What a verification call produced, for the surrounding system to present."""
    identity: IdentityProfile
    result: ComparisonResult
    dispatch: DispatchResult
    verified_by: Optional[str] = None
    verified_at: Optional[datetime.datetime] = None

    @property
    def status(self) -> str:
        if isinstance(self.result, Indeterminate):
            return "indeterminate"
        return "match" if self.result.match else "no_match"


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(f"{label} required.")
    return str(value).strip()


class AlertDispatcher:
    def __init__(
        self,
        identity_store: IdentityStore,
        alert_store: AlertStore,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        self.identities = identity_store
        self.alerts = alert_store
        self.settings = settings or default_settings
        self._clock = clock
        self._locks = KeyedLock()

    def _now(self, now: Optional[datetime.datetime]) -> datetime.datetime:
        return as_utc(now if now is not None else self._clock())

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def dispatch_verification_outcome(
        self,
        identity: Union[IdentityProfile, str],
        verdict: ComparisonResult,
        now: Optional[datetime.datetime] = None,
    ) -> DispatchResult:
        profile = identity if isinstance(identity, IdentityProfile) else self.identities.get(identity)

        if isinstance(verdict, Indeterminate):
            logger.info("Verification indeterminate for identity=%s: %s", profile.id, verdict.reason)
            return DispatchResult(recorded=False, escalated=False, indeterminate=True, reason=verdict.reason)
        if verdict.match:
            return DispatchResult(recorded=False, escalated=False)

        at = self._now(now)
        record = AttemptRecord.from_verdict(verdict, at)
        with self._locks.hold(profile.id):
            history = self.identities.append_attempt(profile.id, record)
            suspicion = analyze(
                history,
                at,
                window_minutes=self.settings.suspicion_window_minutes,
                threshold=self.settings.suspicion_threshold,
            )
            if not suspicion.is_suspicious:
                return DispatchResult(recorded=True, escalated=False, suspicion=suspicion)
            alert = self._emit_escalation(profile, suspicion)

        logger.warning(
            "Face mismatch escalation for %s: %s failed attempts in %s min (alert=%s)",
            profile.enrollment_number,
            suspicion.attempt_count,
            suspicion.window_minutes,
            alert.id,
        )
        return DispatchResult(recorded=True, escalated=True, alert=alert, suspicion=suspicion)

    def _emit_escalation(self, profile: IdentityProfile, suspicion: SuspicionResult) -> AlertRecord:
        message = (
            f"Multiple failed face recognition attempts detected for {profile.role.value} {profile.display_name}. "
            f"{suspicion.attempt_count} attempts in the last {suspicion.window_minutes} minutes."
        )
        return self._create(
            AlertCreate(
                sender_id=profile.id,
                title=ESCALATION_TITLE,
                message=message,
                category=AlertCategory.FACE_MISMATCH,
                severity=Severity.HIGH,
                target=TargetSpec.privileged_staff(),
            )
        )

    def verify_identity(
        self,
        identity_id: str,
        live_descriptor: Optional[Sequence[float]],
        comparator: BiometricComparator,
        *,
        verified_by: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> VerificationOutcome:
        profile = self.identities.get(identity_id)
        return self._verify(profile, live_descriptor, comparator, verified_by=verified_by, now=now)

    def verify_by_enrollment(
        self,
        enrollment_number: str,
        live_descriptor: Optional[Sequence[float]],
        comparator: BiometricComparator,
        *,
        verified_by: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> VerificationOutcome:
        """Gate check: security scans a QR code carrying the enrollment number."""
        enrollment_number = _require_text(enrollment_number, "Enrollment number")
        profile = self.identities.get_by_enrollment(enrollment_number)
        outcome = self._verify(profile, live_descriptor, comparator, verified_by=verified_by, now=now)
        logger.info(
            "QR-triggered verification for %s by %s: %s",
            profile.enrollment_number,
            verified_by or "-",
            outcome.status,
        )
        return outcome

    def _verify(
        self,
        profile: IdentityProfile,
        live_descriptor: Optional[Sequence[float]],
        comparator: BiometricComparator,
        *,
        verified_by: Optional[str],
        now: Optional[datetime.datetime],
    ) -> VerificationOutcome:
        at = self._now(now)
        reference = self.identities.reference_descriptor(profile.id)
        result = compare_and_evaluate(
            comparator,
            reference,
            live_descriptor,
            threshold=self.settings.face_match_threshold,
        )
        dispatch = self.dispatch_verification_outcome(profile, result, now=at)
        return VerificationOutcome(
            identity=profile,
            result=result,
            dispatch=dispatch,
            verified_by=verified_by,
            verified_at=at,
        )

    def purge_expired_attempts(self, identity_id: str, now: Optional[datetime.datetime] = None) -> int:
        cutoff = retention_cutoff(self._now(now), self.settings.attempt_retention_minutes)
        if cutoff is None:
            return 0
        with self._locks.hold(identity_id):
            removed = self.identities.purge_attempts_before(identity_id, cutoff)
        if removed:
            logger.info("Purged %s attempt records for identity=%s", removed, identity_id)
        return removed

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _create(self, alert: AlertCreate) -> AlertRecord:
        if alert.target.is_degenerate:
            logger.warning("Alert '%s' has a degenerate target; delivering to everyone", alert.title)
        alert_id = self.alerts.create(alert)
        record = self.alerts.get(alert_id)
        logger.info("Alert created: %s - %s priority (id=%s)", alert.category.value, alert.severity.value, alert_id)
        return record

    def raise_sos(
        self,
        sender_id: str,
        title: str,
        message: str,
        *,
        location: Optional[str] = None,
        recipient_ids: Optional[Iterable[str]] = None,
    ) -> AlertRecord:
        title = _require_text(title, "Title and message")
        message = _require_text(message, "Title and message")
        sender = self.identities.get(sender_id)
        if sender.role != Role.STUDENT:
            raise ValidationFailed("Only students can raise an SOS alert.")

        # Explicit recipients replace the staff bucket entirely
        target = TargetSpec(bucket=TargetBucket.ADMINS, recipient_ids=tuple(recipient_ids or ()))

        alert = self._create(
            AlertCreate(
                sender_id=sender.id,
                title=f"SOS: {title}",
                message=f"EMERGENCY from {sender.display_name}: {message}",
                category=AlertCategory.SOS,
                severity=Severity.CRITICAL,
                target=target,
                location=location or SOS_DEFAULT_LOCATION,
            )
        )
        logger.warning("SOS alert sent by %s", sender.enrollment_number)
        return alert

    def broadcast(
        self,
        sender_id: str,
        title: str,
        message: str,
        *,
        target: Optional[TargetSpec] = None,
        category: AlertCategory = AlertCategory.GENERAL,
        severity: Severity = Severity.MEDIUM,
        location: Optional[str] = None,
    ) -> AlertRecord:
        title = _require_text(title, "Title and message")
        message = _require_text(message, "Title and message")
        sender = self.identities.get(sender_id)
        if sender.role not in PRIVILEGED_ROLES:
            raise ValidationFailed("Only administrators and security personnel can broadcast alerts.")
        return self._create(
            AlertCreate(
                sender_id=sender.id,
                title=title,
                message=message,
                category=AlertCategory(category),
                severity=Severity(severity),
                target=target if target is not None else TargetSpec.everyone(),
                location=location,
            )
        )

    def recipients_for(self, alert: Union[AlertRecord, AlertCreate]) -> list[IdentityProfile]:
        """Creation-time recipient set over the whole population."""
        return resolve_recipients(alert.target, self.identities.list())

    def alerts_for(self, viewer_id: str, limit: Optional[int] = None) -> list[AlertRecord]:
        """A viewer's feed: alerts targeting them, newest first."""
        viewer = self.identities.get(viewer_id)
        return self.alerts.query(viewer, limit=limit if limit is not None else self.settings.alert_feed_limit)

    def list_alerts(
        self,
        *,
        category: Optional[AlertCategory] = None,
        severity: Optional[Severity] = None,
        limit: Optional[int] = None,
    ) -> list[AlertRecord]:
        return self.alerts.list_alerts(
            category=category,
            severity=severity,
            limit=limit if limit is not None else self.settings.alert_admin_list_limit,
        )

    def mismatch_alerts(self, limit: Optional[int] = None) -> list[AlertRecord]:
        return self.list_alerts(
            category=AlertCategory.FACE_MISMATCH,
            limit=limit if limit is not None else self.settings.alert_feed_limit,
        )

    def target_students(
        self,
        *,
        degree: Optional[str] = None,
        branch: Optional[str] = None,
        semester: Optional[int] = None,
    ) -> list[IdentityProfile]:
        """Students an administrator can narrow a broadcast to."""
        return self.identities.list(role=Role.STUDENT, degree=degree, branch=branch, semester=semester)
