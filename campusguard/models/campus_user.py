"""
ORM model for campus users.

A campus user is an identity the engine verifies and targets: students,
administrators and security personnel. The enrolled face descriptor is
stored alongside the profile; attempt history lives in
``verification_attempts``.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


class CampusUser(Base):
    __tablename__ = "campus_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(256))
    enrollment_number: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(16), default="student", index=True)  # student, admin, security
    degree: Mapped[str | None] = mapped_column(String(128), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(128), nullable=True)
    semester: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reference_descriptor: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    attempts: Mapped[list["VerificationAttempt"]] = relationship(
        "VerificationAttempt",
        back_populates="user",
        cascade="all, delete-orphan",
    )
