# backend/campus_store/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/campus_store.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///campus_store.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Length of the random suffix in TXN-<timestamp>-<random> codes
    TXN_CODE_RANDOM_LENGTH = int(os.environ.get("TXN_CODE_RANDOM_LENGTH", "6"))

    # Retries for stale/locked stock rows
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
