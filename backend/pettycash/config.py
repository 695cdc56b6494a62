# backend/pettycash/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pettycash.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pettycash.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Dashboard warns when the fund drops below this amount
    LOW_BALANCE_THRESHOLD = Decimal(os.environ.get("LOW_BALANCE_THRESHOLD", "1000.00"))

    # TXN-2025-00001
    TRANSACTION_NUMBER_PREFIX = os.environ.get("TRANSACTION_NUMBER_PREFIX", "TXN")

    # Enforced by the HTTP layer only
    MIN_REJECTION_REASON_LENGTH = int(os.environ.get("MIN_REJECTION_REASON_LENGTH", "10"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",") if o.strip()
    )
