# backend/siteledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/siteledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///siteledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Number of sign-off levels attached when a purchase order is submitted
    PO_APPROVAL_LEVELS = int(os.environ.get("PO_APPROVAL_LEVELS", "2"))

    # Local blob store for worker photos and invoices
    BLOB_STORE_DIR = os.environ.get("BLOB_STORE_DIR", "uploads")
    BLOB_STORE_BASE_URL = os.environ.get("BLOB_STORE_BASE_URL", "/uploads")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BLOB_STORE_DIR = os.environ.get("TEST_BLOB_STORE_DIR", "/tmp/siteledger-test-uploads")
