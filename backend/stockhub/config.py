# backend/stockhub/config.py
from __future__ import annotations
import os


def _split_paths(value: str | None) -> list[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(os.pathsep) if p.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Authoritative relational store
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockhub.sqlite3",
    )
    # Secondary document mirror lives on its own bind
    SQLALCHEMY_BINDS = {
        "mirror": os.environ.get("MIRROR_DATABASE_URL", "sqlite:///stockhub_mirror.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" mirrors into the bind above, "memory" keeps documents in-process
    MIRROR_BACKEND = os.environ.get("MIRROR_BACKEND", "sql")
    MIRROR_OUTBOX_MAX_ATTEMPTS = int(os.environ.get("MIRROR_OUTBOX_MAX_ATTEMPTS", 5))
    MIRROR_OUTBOX_BATCH_SIZE = int(os.environ.get("MIRROR_OUTBOX_BATCH_SIZE", 100))

    EXPIRY_ALERT_DAYS = int(os.environ.get("EXPIRY_ALERT_DAYS", 30))

    # Rendered list caches owned by the UI layer; deleted after every write
    INVENTORY_CACHE_FILES = _split_paths(os.environ.get("INVENTORY_CACHE_FILES"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
