"""
ORM model for alerts.

The target specification is stored flattened: the bucket as a column and
each narrowing list as JSON. Rows are written once and never updated;
``seq`` follows insertion order and breaks ties between equal ``created_at``.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


class Alert(Base):
    __tablename__ = "alerts"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, default=lambda: str(uuid.uuid4()))
    sender_id: Mapped[str] = mapped_column(String(36), index=True)
    title: Mapped[str] = mapped_column(String(256))
    message: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(32), default="general", index=True)
    severity: Mapped[str] = mapped_column(String(16), default="medium", index=True)
    location: Mapped[str | None] = mapped_column(String(256), nullable=True)

    target_bucket: Mapped[str | None] = mapped_column(String(16), nullable=True)
    target_degrees: Mapped[list[str]] = mapped_column(JSON, default=list)
    target_branches: Mapped[list[str]] = mapped_column(JSON, default=list)
    target_semesters: Mapped[list[int]] = mapped_column(JSON, default=list)
    target_roles: Mapped[list[str]] = mapped_column(JSON, default=list)
    target_recipient_ids: Mapped[list[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
