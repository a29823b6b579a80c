"""
Configuration for the CampusGuard verification engine.

This module defines settings for the engine, including the database
connection used by the reference stores and the matching / suspicion
constants. Settings are loaded from environment variables or default
values suitable for development. Use environment variables or a `.env`
file to override as needed.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pathlib import Path
from dotenv import load_dotenv
import logging
import os

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Database connection string. Default uses a local SQLite file.
    database_url: str = Field(default="sqlite+pysqlite:///./campusguard.db")
    auto_create_db: bool = Field(default=True)

    # Descriptor distance below which two faces are the same person
    face_match_threshold: float = Field(default=0.6)
    suspicion_window_minutes: int = Field(default=10)
    suspicion_threshold: int = Field(default=3)
    # 0 keeps attempt history forever
    attempt_retention_minutes: int = Field(default=0)

    alert_feed_limit: int = Field(default=50)
    alert_admin_list_limit: int = Field(default=100)

    log_level: str = Field(default="INFO")
    log_file: str | None = Field(default=None)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_app_env() -> str:
    raw = os.getenv("CAMPUSGUARD_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown CAMPUSGUARD_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def validate_runtime_settings(cfg: Settings) -> None:
    logger = logging.getLogger("config")

    if not 0 < cfg.face_match_threshold <= 2:
        raise RuntimeError("FACE_MATCH_THRESHOLD must be in (0, 2].")
    if cfg.suspicion_window_minutes <= 0:
        raise RuntimeError("SUSPICION_WINDOW_MINUTES must be positive.")
    if cfg.suspicion_threshold < 1:
        raise RuntimeError("SUSPICION_THRESHOLD must be at least 1.")
    if cfg.attempt_retention_minutes < 0:
        raise RuntimeError("ATTEMPT_RETENTION_MINUTES must not be negative.")
    if 0 < cfg.attempt_retention_minutes < cfg.suspicion_window_minutes:
        raise RuntimeError("ATTEMPT_RETENTION_MINUTES must cover the suspicion window.")

    if cfg.alert_feed_limit <= 0 or cfg.alert_admin_list_limit <= 0:
        logger.warning("Alert list limits must be positive; lists will come back empty.")

    if get_app_env() == "prod":
        if cfg.database_url.startswith("sqlite"):
            logger.warning("DATABASE_URL points at SQLite in prod. Consider a server database.")
        if cfg.auto_create_db:
            logger.warning("AUTO_CREATE_DB is enabled in prod. Consider setting it to false.")
        if cfg.attempt_retention_minutes == 0:
            logger.warning("ATTEMPT_RETENTION_MINUTES is 0; attempt history grows without bound.")


settings = Settings()
validate_runtime_settings(settings)
