"""
Composition root for the CampusGuard engine.

Wires the SQLAlchemy-backed stores into an ``AlertDispatcher``. The
surrounding application (web handlers, workers) holds one dispatcher per
process so the per-identity critical sections are shared.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .core.config import Settings, settings as default_settings, validate_runtime_settings
from .core.logging_config import setup_logging
from .services.alert_store import SqlAlertStore
from .services.dispatcher import AlertDispatcher
from .services.identity_store import SqlIdentityStore


def build_dispatcher(
    session_factory: Optional[Callable[[], Session]] = None,
    settings: Optional[Settings] = None,
) -> AlertDispatcher:
    cfg = settings or default_settings
    validate_runtime_settings(cfg)
    setup_logging(cfg.log_level, cfg.log_file)

    if session_factory is None:
        from .core.db import SessionLocal, init_db

        if cfg.auto_create_db:
            init_db()
        session_factory = SessionLocal

    logging.getLogger("campusguard").info(
        "Dispatcher ready (threshold=%s window_min=%s suspicious_at=%s)",
        cfg.face_match_threshold,
        cfg.suspicion_window_minutes,
        cfg.suspicion_threshold,
    )
    return AlertDispatcher(
        SqlIdentityStore(session_factory),
        SqlAlertStore(session_factory),
        settings=cfg,
    )
