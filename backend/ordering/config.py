# backend/ordering/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ordering.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ordering.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Calendar day boundaries (fallback cutoff window, document number dates)
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Seoul")

    # Categories subject to the daily cutoff. Empty means every category.
    CUTOFF_CATEGORIES = _env_list("CUTOFF_CATEGORIES")
    DEFAULT_PURCHASE_CATEGORY = os.environ.get("DEFAULT_PURCHASE_CATEGORY", "daily-fresh")
    UNCATEGORIZED_LABEL = os.environ.get("UNCATEGORIZED_LABEL", "uncategorized")

    # Sale order intake checks
    AUTO_CONFIRM_SALE_ORDERS = _env_bool("AUTO_CONFIRM_SALE_ORDERS", True)
    UNUSUAL_QUANTITY_THRESHOLD = int(os.environ.get("UNUSUAL_QUANTITY_THRESHOLD", "1000"))
    PRICE_MISMATCH_PERCENT = float(os.environ.get("PRICE_MISMATCH_PERCENT", "10"))

    # Document numbers: PREFIX-YYMMDD-NNN
    DOCUMENT_NUMBER_PAD = int(os.environ.get("DOCUMENT_NUMBER_PAD", "3"))

    # Supplier notifications
    NOTIFICATION_BACKEND = os.environ.get("NOTIFICATION_BACKEND", "log")  # log | webhook
    NOTIFICATION_WEBHOOK_URL = os.environ.get("NOTIFICATION_WEBHOOK_URL", "")
    NOTIFICATION_WEBHOOK_TOKEN = os.environ.get("NOTIFICATION_WEBHOOK_TOKEN", "")
    NOTIFICATION_TIMEOUT_SECONDS = float(os.environ.get("NOTIFICATION_TIMEOUT_SECONDS", "10"))
    NOTIFICATION_SIGNATURE = os.environ.get("NOTIFICATION_SIGNATURE", "Please confirm and reply.")
    DISPATCH_MAX_WORKERS = int(os.environ.get("DISPATCH_MAX_WORKERS", "4"))
