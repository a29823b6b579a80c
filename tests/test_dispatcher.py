import datetime
import threading

import pytest

from campusguard.core.config import Settings
from campusguard.core.errors import IdentityNotFound, PersistenceFailed, ValidationFailed
from campusguard.schemas.alert import TargetSpec
from campusguard.schemas.enums import AlertCategory, AttemptOutcome, Role, Severity, TargetBucket
from campusguard.services.alert_store import InMemoryAlertStore
from campusguard.services.attempt_history import AttemptRecord
from campusguard.services.biometrics import EuclideanComparator
from campusguard.services.dispatcher import AlertDispatcher
from campusguard.services.identities import register_identity
from campusguard.services.identity_store import InMemoryIdentityStore
from campusguard.services.match_evaluator import Indeterminate, evaluate_match

NOW = datetime.datetime(2026, 3, 2, 9, 30, tzinfo=datetime.timezone.utc)
REFERENCE = [0.0, 0.0, 0.0, 0.0]


class _Clock:
    def __init__(self, start: datetime.datetime) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(seconds=1)
        return self.now


def _settings(**overrides) -> Settings:
    values = dict(
        face_match_threshold=0.6,
        suspicion_window_minutes=10,
        suspicion_threshold=3,
        attempt_retention_minutes=0,
        alert_feed_limit=50,
        alert_admin_list_limit=100,
    )
    values.update(overrides)
    return Settings(**values)


def _setup(**overrides):
    identities = InMemoryIdentityStore()
    alerts = InMemoryAlertStore(clock=_Clock(NOW))
    dispatcher = AlertDispatcher(identities, alerts, settings=_settings(**overrides), clock=lambda: NOW)
    student = register_identity(
        identities,
        name="Asha Rao",
        enrollment_number="CS2023001",
        role=Role.STUDENT,
        degree="BTech",
        branch="CSE",
        semester=5,
        descriptor=REFERENCE,
    )
    other = register_identity(
        identities,
        name="Vikram Das",
        enrollment_number="EC2023007",
        role=Role.STUDENT,
        degree="BTech",
        branch="ECE",
        semester=3,
        descriptor=REFERENCE,
    )
    admin = register_identity(
        identities,
        name="Dean Office",
        enrollment_number="ADM001",
        role=Role.ADMIN,
        degree="BTech",
        branch="CSE",
        descriptor=REFERENCE,
    )
    guard = register_identity(
        identities,
        name="Gate Guard",
        enrollment_number="SEC001",
        role=Role.SECURITY,
        descriptor=REFERENCE,
    )
    return dispatcher, identities, alerts, student, other, admin, guard


def _seed_failure(identities, identity_id: str, minutes_ago: float) -> None:
    identities.append_attempt(
        identity_id,
        AttemptRecord(
            timestamp=NOW - datetime.timedelta(minutes=minutes_ago),
            outcome=AttemptOutcome.NO_MATCH,
            confidence=30.0,
            distance=0.7,
        ),
    )


def test_third_failure_in_window_escalates():
    dispatcher, identities, alerts, student, *_ = _setup()
    _seed_failure(identities, student.id, 9)
    _seed_failure(identities, student.id, 5)

    result = dispatcher.dispatch_verification_outcome(student, evaluate_match(0.72), now=NOW)

    assert result.recorded is True
    assert result.escalated is True
    assert result.suspicion.attempt_count == 3
    alert = result.alert
    assert alert.category == AlertCategory.FACE_MISMATCH
    assert alert.severity == Severity.HIGH
    assert alert.target.bucket == TargetBucket.ADMINS
    assert alert.sender_id == student.id
    assert "for student Asha Rao (CS2023001)" in alert.message
    assert "3 attempts in the last 10 minutes" in alert.message
    assert alerts.get(alert.id) == alert


def test_escalation_message_names_the_identity_role():
    dispatcher, identities, _, _, _, _, guard = _setup()
    _seed_failure(identities, guard.id, 4)
    _seed_failure(identities, guard.id, 2)

    result = dispatcher.dispatch_verification_outcome(guard, evaluate_match(0.9), now=NOW)

    assert result.escalated is True
    assert "for security Gate Guard (SEC001)" in result.alert.message
    assert "student" not in result.alert.message


def test_failure_outside_window_is_not_counted():
    dispatcher, identities, alerts, student, *_ = _setup()
    _seed_failure(identities, student.id, 15)
    _seed_failure(identities, student.id, 2)

    result = dispatcher.dispatch_verification_outcome(student, evaluate_match(0.8), now=NOW)

    assert result.recorded is True
    assert result.escalated is False
    assert result.alert is None
    assert result.suspicion.attempt_count == 2
    assert alerts.list_alerts() == []


def test_match_records_nothing():
    dispatcher, identities, _, student, *_ = _setup()
    result = dispatcher.dispatch_verification_outcome(student.id, evaluate_match(0.2), now=NOW)
    assert result.recorded is False
    assert result.escalated is False
    assert identities.history(student.id) == ()


def test_indeterminate_records_nothing():
    dispatcher, identities, _, student, *_ = _setup()
    _seed_failure(identities, student.id, 3)
    _seed_failure(identities, student.id, 2)

    result = dispatcher.dispatch_verification_outcome(student, Indeterminate("No face detected"), now=NOW)

    assert result.indeterminate is True
    assert result.recorded is False
    assert result.escalated is False
    assert len(identities.history(student.id)) == 2


def test_each_failed_call_is_recorded_once():
    dispatcher, identities, alerts, student, *_ = _setup()
    results = [dispatcher.dispatch_verification_outcome(student, evaluate_match(0.9), now=NOW) for _ in range(4)]
    assert [r.suspicion.attempt_count for r in results] == [1, 2, 3, 4]
    assert [r.escalated for r in results] == [False, False, True, True]
    assert len(identities.history(student.id)) == 4
    assert len(alerts.list_alerts(category=AlertCategory.FACE_MISMATCH)) == 2


def test_verify_identity_end_to_end():
    dispatcher, identities, _, student, *_ = _setup()
    comparator = EuclideanComparator()

    ok = dispatcher.verify_identity(student.id, [0.1, 0.1, 0.1, 0.1], comparator)
    assert ok.status == "match"
    assert ok.result.confidence == 80.0

    outcomes = [dispatcher.verify_identity(student.id, [0.5, 0.5, 0.5, 0.5], comparator) for _ in range(3)]
    assert [o.status for o in outcomes] == ["no_match"] * 3
    assert outcomes[-1].dispatch.escalated is True

    no_face = dispatcher.verify_identity(student.id, None, comparator)
    assert no_face.status == "indeterminate"
    assert len(identities.history(student.id)) == 3


def test_verify_without_reference_is_indeterminate():
    dispatcher, identities, _, *_ = _setup()
    newcomer = register_identity(
        identities,
        name="No Photo",
        enrollment_number="CS2023999",
        degree="BTech",
        branch="CSE",
        semester=1,
    )
    outcome = dispatcher.verify_identity(newcomer.id, [0.0, 0.0, 0.0, 0.0], EuclideanComparator())
    assert outcome.status == "indeterminate"
    assert identities.history(newcomer.id) == ()


def test_verify_by_enrollment_for_gate_checks():
    dispatcher, _, _, student, *_, guard = _setup()
    outcome = dispatcher.verify_by_enrollment(
        "CS2023001", [0.0, 0.0, 0.0, 0.0], EuclideanComparator(), verified_by=guard.name
    )
    assert outcome.identity.id == student.id
    assert outcome.status == "match"
    assert outcome.verified_by == "Gate Guard"
    assert outcome.verified_at == NOW

    with pytest.raises(IdentityNotFound):
        dispatcher.verify_by_enrollment("UNKNOWN", [0.0], EuclideanComparator())
    with pytest.raises(ValidationFailed):
        dispatcher.verify_by_enrollment("  ", [0.0], EuclideanComparator())


def test_persistence_failure_propagates():
    class _BrokenStore(InMemoryIdentityStore):
        def append_attempt(self, identity_id, record):
            raise PersistenceFailed("disk full")

    identities = _BrokenStore()
    alerts = InMemoryAlertStore()
    dispatcher = AlertDispatcher(identities, alerts, settings=_settings(), clock=lambda: NOW)
    student = register_identity(
        identities, name="A", enrollment_number="E1", degree="BTech", branch="CSE", semester=1, descriptor=REFERENCE
    )
    with pytest.raises(PersistenceFailed):
        dispatcher.dispatch_verification_outcome(student, evaluate_match(0.9))
    assert alerts.list_alerts() == []


def test_concurrent_failures_for_one_identity_are_serialized():
    dispatcher, identities, alerts, student, *_ = _setup()
    results = []
    results_lock = threading.Lock()
    start = threading.Barrier(10)

    def _worker() -> None:
        start.wait()
        res = dispatcher.dispatch_verification_outcome(student, evaluate_match(0.95), now=NOW)
        with results_lock:
            results.append(res)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    counts = sorted(r.suspicion.attempt_count for r in results)
    assert counts == list(range(1, 11))
    assert sum(1 for r in results if r.escalated) == 8
    assert len(identities.history(student.id)) == 10
    assert len(alerts.list_alerts()) == 8


def test_sos_targets_staff_with_critical_severity():
    dispatcher, _, _, student, other, admin, guard = _setup()
    alert = dispatcher.raise_sos(student.id, "Help", "Stuck in lab 3")

    assert alert.category == AlertCategory.SOS
    assert alert.severity == Severity.CRITICAL
    assert alert.title == "SOS: Help"
    assert alert.message == "EMERGENCY from Asha Rao (CS2023001): Stuck in lab 3"
    assert alert.location == "Location not provided"
    assert [p.id for p in dispatcher.recipients_for(alert)] == [admin.id, guard.id]
    assert dispatcher.alerts_for(guard.id)[0].id == alert.id
    assert dispatcher.alerts_for(other.id) == []


def test_sos_with_explicit_recipients():
    dispatcher, _, _, student, _, admin, guard = _setup()
    alert = dispatcher.raise_sos(student.id, "Help", "Fire alarm", location="Block C", recipient_ids=[guard.id])
    assert alert.location == "Block C"
    assert [p.id for p in dispatcher.recipients_for(alert)] == [guard.id]
    assert dispatcher.alerts_for(admin.id) == []


def test_sos_only_from_students():
    dispatcher, _, _, _, _, admin, _ = _setup()
    with pytest.raises(ValidationFailed):
        dispatcher.raise_sos(admin.id, "Help", "x")


def test_sos_requires_title_and_message():
    dispatcher, _, _, student, *_ = _setup()
    with pytest.raises(ValidationFailed):
        dispatcher.raise_sos(student.id, "", "x")


def test_broadcast_targeting_and_feeds():
    dispatcher, _, _, student, other, admin, guard = _setup()
    cse = dispatcher.broadcast(admin.id, "CSE seminar", "Hall A at 4pm", target=TargetSpec(branches=["CSE"]))
    everyone = dispatcher.broadcast(guard.id, "Gate 2 closed", "Use gate 1", severity=Severity.HIGH)

    assert everyone.target.bucket == TargetBucket.ALL
    assert [a.id for a in dispatcher.alerts_for(student.id)] == [everyone.id, cse.id]
    assert [a.id for a in dispatcher.alerts_for(other.id)] == [everyone.id]
    assert [a.id for a in dispatcher.alerts_for(admin.id)] == [everyone.id]
    assert [a.id for a in dispatcher.alerts_for(student.id, limit=1)] == [everyone.id]


def test_broadcast_rejected_for_students_and_missing_text():
    dispatcher, _, _, student, _, admin, _ = _setup()
    with pytest.raises(ValidationFailed):
        dispatcher.broadcast(student.id, "Hi", "there")
    with pytest.raises(ValidationFailed):
        dispatcher.broadcast(admin.id, "Hi", "   ")


def test_admin_listing_filters():
    dispatcher, identities, _, student, _, admin, _ = _setup()
    dispatcher.broadcast(admin.id, "Drill", "Evacuation drill", category=AlertCategory.EMERGENCY, severity=Severity.HIGH)
    dispatcher.broadcast(admin.id, "Notice", "Library hours")
    for minutes in (3, 2):
        _seed_failure(identities, student.id, minutes)
    dispatcher.dispatch_verification_outcome(student, evaluate_match(0.9), now=NOW)

    assert len(dispatcher.list_alerts()) == 3
    assert [a.title for a in dispatcher.list_alerts(category=AlertCategory.EMERGENCY)] == ["Drill"]
    assert len(dispatcher.list_alerts(severity=Severity.HIGH)) == 2
    assert len(dispatcher.list_alerts(limit=1)) == 1
    assert [a.title for a in dispatcher.mismatch_alerts()] == ["Face Recognition Mismatch Alert"]


def test_target_students_lookup():
    dispatcher, *_ = _setup()
    assert [p.enrollment_number for p in dispatcher.target_students()] == ["CS2023001", "EC2023007"]
    assert [p.enrollment_number for p in dispatcher.target_students(branch="ECE")] == ["EC2023007"]
    assert dispatcher.target_students(semester=8) == []


def test_retention_purge():
    dispatcher, identities, _, student, *_ = _setup(attempt_retention_minutes=60)
    for minutes in (120, 61, 30, 1):
        _seed_failure(identities, student.id, minutes)
    assert dispatcher.purge_expired_attempts(student.id, now=NOW) == 2
    assert len(identities.history(student.id)) == 2

    keep_forever, ids2, *_ = _setup()
    student2 = ids2.get_by_enrollment("CS2023001")
    _seed_failure(ids2, student2.id, 500)
    assert keep_forever.purge_expired_attempts(student2.id, now=NOW) == 0
