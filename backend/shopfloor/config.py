# backend/shopfloor/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopfloor.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopfloor.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # bcrypt cost factor for PIN hashing (tests lower this)
    PIN_HASH_ROUNDS = int(os.environ.get("PIN_HASH_ROUNDS", "12"))

    # Only honor X-Real-IP / X-Forwarded-For when running behind a trusted proxy
    TRUST_PROXY_HEADERS = _env_bool("TRUST_PROXY_HEADERS", False)

    # Initial admin PIN must be changed within this window after first boot
    SETUP_WINDOW_HOURS = int(os.environ.get("SETUP_WINDOW_HOURS", "24"))

    # Periodic sweep of expired sessions / stale rate-limit rows (0 disables)
    SESSION_SWEEP_INTERVAL_SECONDS = int(os.environ.get("SESSION_SWEEP_INTERVAL_SECONDS", "300"))

    # Photo storage root
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")

    # Request body cap (photo uploads are the largest payloads)
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(12 * 1024 * 1024)))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
