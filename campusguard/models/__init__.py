"""
SQLAlchemy model base class for the CampusGuard reference stores.

This package defines ORM models for campus users (identities), their
verification attempts, and alerts. All models should inherit from the
declarative `Base` defined here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .campus_user import CampusUser  # noqa: E402,F401
from .verification_attempt import VerificationAttempt  # noqa: E402,F401
from .alert import Alert  # noqa: E402,F401

__all__ = [
    "Base",

    # Identities
    "CampusUser",
    "VerificationAttempt",

    # Alerts
    "Alert",
]
