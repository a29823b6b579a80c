"""
Alert stores.

Feed queries go through the audience predicate instead of a hand-built
database filter so an alert shows up in a viewer's feed exactly when the
viewer was part of its recipient set at creation time.
"""

from __future__ import annotations

import datetime
import logging
import threading
import uuid
from typing import Callable, Iterable, Iterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import PersistenceFailed
from ..models.alert import Alert
from ..schemas.alert import AlertCreate, AlertRecord, TargetSpec
from ..schemas.enums import AlertCategory, Severity
from ..schemas.identity import IdentityProfile
from .attempt_history import as_utc, utc_now
from .audience import is_recipient

logger = logging.getLogger("alert_store")

_FEED_BATCH = 200


class AlertStore:
    def create(self, alert: AlertCreate) -> str:
        raise NotImplementedError

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        raise NotImplementedError

    def iter_newest_first(self) -> Iterator[AlertRecord]:
        raise NotImplementedError

    def list_alerts(
        self,
        *,
        category: Optional[AlertCategory] = None,
        severity: Optional[Severity] = None,
        limit: int = 100,
    ) -> list[AlertRecord]:
        raise NotImplementedError

    def query(self, viewer: IdentityProfile, limit: int = 50) -> list[AlertRecord]:
        """Alerts whose audience includes ``viewer``, newest first."""
        if limit <= 0:
            return []
        items: list[AlertRecord] = []
        for alert in self.iter_newest_first():
            if is_recipient(alert.target, viewer):
                items.append(alert)
                if len(items) >= limit:
                    break
        return items


def _filter_alerts(
    alerts: Iterable[AlertRecord],
    category: Optional[AlertCategory],
    severity: Optional[Severity],
    limit: int,
) -> list[AlertRecord]:
    out: list[AlertRecord] = []
    if limit <= 0:
        return out
    for alert in alerts:
        if category is not None and alert.category != category:
            continue
        if severity is not None and alert.severity != severity:
            continue
        out.append(alert)
        if len(out) >= limit:
            break
    return out


class InMemoryAlertStore(AlertStore):
    def __init__(self, clock: Callable[[], datetime.datetime] = utc_now) -> None:
        self._lock = threading.Lock()
        self._alerts: list[AlertRecord] = []
        self._clock = clock

    def create(self, alert: AlertCreate) -> str:
        record = AlertRecord(
            **alert.model_dump(exclude={"target"}),
            target=alert.target,
            id=str(uuid.uuid4()),
            created_at=as_utc(self._clock()),
        )
        with self._lock:
            self._alerts.append(record)
        return record.id

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    return alert
        return None

    def iter_newest_first(self) -> Iterator[AlertRecord]:
        with self._lock:
            # Stable sort keeps insertion order among equal timestamps, reversed
            snapshot = list(reversed(self._alerts))
        snapshot.sort(key=lambda a: a.created_at, reverse=True)
        return iter(snapshot)

    def list_alerts(self, *, category=None, severity=None, limit: int = 100) -> list[AlertRecord]:
        return _filter_alerts(self.iter_newest_first(), category, severity, limit)


def _to_record(row: Alert) -> AlertRecord:
    target = TargetSpec(
        bucket=row.target_bucket,
        degrees=row.target_degrees or (),
        branches=row.target_branches or (),
        semesters=row.target_semesters or (),
        roles=row.target_roles or (),
        recipient_ids=row.target_recipient_ids or (),
    )
    return AlertRecord(
        id=row.id,
        sender_id=row.sender_id,
        title=row.title,
        message=row.message,
        category=row.category,
        severity=row.severity,
        location=row.location,
        target=target,
        created_at=as_utc(row.created_at),
    )


class SqlAlertStore(AlertStore):
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _run(self, action: str, fn):
        db = self._session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Alert store %s failed: %s", action, exc)
            raise PersistenceFailed(f"Alert store {action} failed: {exc}") from exc
        finally:
            db.close()

    def create(self, alert: AlertCreate) -> str:
        def _create(db: Session) -> str:
            target = alert.target
            row = Alert(
                id=str(uuid.uuid4()),
                sender_id=alert.sender_id,
                title=alert.title,
                message=alert.message,
                category=alert.category.value,
                severity=alert.severity.value,
                location=alert.location,
                target_bucket=target.bucket.value if target.bucket else None,
                target_degrees=list(target.degrees),
                target_branches=list(target.branches),
                target_semesters=list(target.semesters),
                target_roles=[r.value for r in target.roles],
                target_recipient_ids=list(target.recipient_ids),
                created_at=as_utc(self._clock()),
            )
            db.add(row)
            db.commit()
            return row.id

        return self._run("create", _create)

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        def _get(db: Session) -> Optional[AlertRecord]:
            row = db.execute(select(Alert).where(Alert.id == alert_id)).scalar_one_or_none()
            return _to_record(row) if row else None

        return self._run("get", _get)

    def _page(
        self,
        limit: int,
        *,
        after: Optional[tuple[datetime.datetime, int]] = None,
        category=None,
        severity=None,
    ) -> tuple[list[AlertRecord], Optional[tuple[datetime.datetime, int]]]:
        """One page newest first, strictly older than the ``(created_at, seq)`` key ``after``."""

        def _fetch(db: Session):
            stmt = select(Alert)
            if category is not None:
                stmt = stmt.where(Alert.category == AlertCategory(category).value)
            if severity is not None:
                stmt = stmt.where(Alert.severity == Severity(severity).value)
            if after is not None:
                last_ts, last_seq = after
                stmt = stmt.where(
                    or_(
                        Alert.created_at < last_ts,
                        and_(Alert.created_at == last_ts, Alert.seq < last_seq),
                    )
                )
            stmt = stmt.order_by(Alert.created_at.desc(), Alert.seq.desc()).limit(limit)
            rows = list(db.execute(stmt).scalars())
            last = (rows[-1].created_at, rows[-1].seq) if rows else None
            return [_to_record(r) for r in rows], last

        return self._run("query", _fetch)

    def iter_newest_first(self) -> Iterator[AlertRecord]:
        after = None
        while True:
            page, after = self._page(_FEED_BATCH, after=after)
            yield from page
            if len(page) < _FEED_BATCH:
                return

    def list_alerts(self, *, category=None, severity=None, limit: int = 100) -> list[AlertRecord]:
        if limit <= 0:
            return []
        page, _ = self._page(limit, category=category, severity=severity)
        return page
