# backend/fieldsales/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local durable cache (written synchronously before any remote call)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///fieldsales-cache.sqlite3",
    )
    # Remote document store (source of truth, eventually consistent)
    SQLALCHEMY_BINDS = {
        "remote": os.environ.get("REMOTE_DATABASE_URL", "sqlite:///fieldsales-remote.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Opportunistic sync attempts before an entity is marked failed
    SYNC_MAX_ATTEMPTS = int(os.environ.get("SYNC_MAX_ATTEMPTS", "3"))

    # Policy ceiling for bookers whose record carries none
    DEFAULT_MAX_DISCOUNT_PERCENT = os.environ.get("DEFAULT_MAX_DISCOUNT_PERCENT", "5")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_BINDS = {"remote": "sqlite://"}
    LOG_LEVEL = "DEBUG"
