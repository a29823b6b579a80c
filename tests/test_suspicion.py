import datetime

from campusguard.schemas.enums import AttemptOutcome
from campusguard.services.attempt_history import (
    AttemptRecord,
    append_attempt,
    retention_cutoff,
    within_window,
)
from campusguard.services.suspicion import analyze

NOW = datetime.datetime(2026, 3, 2, 9, 30, tzinfo=datetime.timezone.utc)


def _fail(minutes_ago: float) -> AttemptRecord:
    return AttemptRecord(
        timestamp=NOW - datetime.timedelta(minutes=minutes_ago),
        outcome=AttemptOutcome.NO_MATCH,
        confidence=31.5,
        distance=0.685,
    )


def _ok(minutes_ago: float) -> AttemptRecord:
    return AttemptRecord(
        timestamp=NOW - datetime.timedelta(minutes=minutes_ago),
        outcome=AttemptOutcome.MATCH,
        confidence=70.0,
        distance=0.3,
    )


def test_empty_history():
    result = analyze((), NOW, window_minutes=10, threshold=3)
    assert result.is_suspicious is False
    assert result.attempt_count == 0
    assert result.window_minutes == 10
    assert result.last_attempt is None


def test_exactly_threshold_is_suspicious():
    history = (_fail(8), _fail(4), _fail(0))
    result = analyze(history, NOW, window_minutes=10, threshold=3)
    assert result.is_suspicious is True
    assert result.attempt_count == 3
    assert result.last_attempt == history[-1]


def test_below_threshold_is_not_suspicious():
    result = analyze((_fail(8), _fail(0)), NOW, window_minutes=10, threshold=3)
    assert result.is_suspicious is False
    assert result.attempt_count == 2


def test_records_outside_window_do_not_change_outcome():
    base = (_fail(5), _fail(1))
    with_old = (_fail(11),) + base
    before = analyze(base, NOW, 10, 3)
    after = analyze(with_old, NOW, 10, 3)
    assert after.is_suspicious == before.is_suspicious
    assert after.attempt_count == before.attempt_count == 2


def test_window_boundary_is_exclusive():
    history = (_fail(10), _fail(3), _fail(1))
    result = analyze(history, NOW, window_minutes=10, threshold=3)
    assert result.attempt_count == 2
    assert result.is_suspicious is False


def test_matches_inside_window_are_not_counted():
    history = (_fail(6), _ok(5), _ok(4), _fail(1))
    result = analyze(history, NOW, window_minutes=10, threshold=3)
    assert result.attempt_count == 2
    assert result.is_suspicious is False


def test_window_slides_back_to_not_suspicious():
    history = (_fail(9), _fail(6), _fail(3))
    assert analyze(history, NOW, 10, 3).is_suspicious is True
    later = NOW + datetime.timedelta(minutes=2)
    result = analyze(history, later, 10, 3)
    assert result.attempt_count == 2
    assert result.is_suspicious is False


def test_naive_now_is_read_as_utc():
    history = (_fail(2), _fail(1), _fail(0))
    naive_now = NOW.replace(tzinfo=None)
    assert analyze(history, naive_now, 10, 3).is_suspicious is True


def test_analyze_does_not_mutate_history():
    history = [_fail(2), _fail(1)]
    snapshot = list(history)
    analyze(history, NOW, 10, 3)
    assert history == snapshot


def test_append_attempt_returns_new_sequence():
    first = (_fail(3),)
    record = _fail(0)
    updated = append_attempt(first, record)
    assert first == (_fail(3),)
    assert updated == (_fail(3), record)


def test_within_window_and_retention_cutoff():
    history = (_fail(30), _fail(9), _ok(1))
    recent = within_window(history, NOW, datetime.timedelta(minutes=10))
    assert [r.distance for r in recent] == [0.685, 0.3]
    assert retention_cutoff(NOW, 0) is None
    assert retention_cutoff(NOW, 60) == NOW - datetime.timedelta(minutes=60)


def test_record_normalises_naive_timestamp():
    record = AttemptRecord(timestamp=datetime.datetime(2026, 1, 1, 12, 0), outcome="no_match", confidence=10.0)
    assert record.timestamp.tzinfo == datetime.timezone.utc
    assert record.outcome is AttemptOutcome.NO_MATCH
    assert record.is_failure is True
