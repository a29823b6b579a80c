"""
Append-only log of verification outcomes per campus user.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Float, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


class VerificationAttempt(Base):
    __tablename__ = "verification_attempts"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("campus_users.id", ondelete="CASCADE"), index=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    outcome: Mapped[str] = mapped_column(String(16))  # match, no_match
    confidence: Mapped[float] = mapped_column(Float)
    distance: Mapped[float | None] = mapped_column(Float, nullable=True)

    user: Mapped["CampusUser"] = relationship("CampusUser", back_populates="attempts")
