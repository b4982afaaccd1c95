"""Environment-driven configuration for the SalonQueue backend."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonqueue.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "sq_auth")
    AUTH_TOKEN_MAX_AGE = int(os.environ.get("AUTH_TOKEN_MAX_AGE", 7 * 24 * 60 * 60))

    # Queue policy
    QUEUE_REPACK_POSITIONS = _env_flag("QUEUE_REPACK_POSITIONS", True)
    QUEUE_DEFAULT_SERVICE_MINUTES = int(os.environ.get("QUEUE_DEFAULT_SERVICE_MINUTES", 15))
    QUEUE_WAITING_TTL_MINUTES = int(os.environ.get("QUEUE_WAITING_TTL_MINUTES", 240))
    LOYALTY_POINTS_PER_VISIT = int(os.environ.get("LOYALTY_POINTS_PER_VISIT", 10))
