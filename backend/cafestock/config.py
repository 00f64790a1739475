# backend/cafestock/config.py
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

    # SQLite DB stored in backend/instance/cafestock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cafestock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Payment slips are written here before the payment row is inserted
    SLIP_UPLOAD_DIR = os.environ.get("SLIP_UPLOAD_DIR", os.path.join("data", "slips"))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    # FREE_MODE disables the subscription gate on feature routes
    FREE_MODE = _env_bool("FREE_MODE", False)

    TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", "14"))
    PLAN_NAME = os.environ.get("PLAN_NAME", "Cafe")
    PLAN_PRICE_CENTS = int(os.environ.get("PLAN_PRICE_CENTS", "39900"))
    PLAN_PERIOD_DAYS = int(os.environ.get("PLAN_PERIOD_DAYS", "30"))
    PAYMENT_METHOD = os.environ.get("PAYMENT_METHOD", "promptpay")

    # Seeded only when the users table is empty (flask system init)
    BOOTSTRAP_ADMIN_USERNAME = os.environ.get("BOOTSTRAP_ADMIN_USERNAME", "admin")
    BOOTSTRAP_ADMIN_PASSWORD = os.environ.get("BOOTSTRAP_ADMIN_PASSWORD", "admin123")

    # Seller identity printed on invoices
    SELLER_BUSINESS_NAME = os.environ.get("SELLER_BUSINESS_NAME", "Cafe Stock Co., Ltd.")
    SELLER_TAX_ID = os.environ.get("SELLER_TAX_ID", "-")
    SELLER_BRANCH = os.environ.get("SELLER_BRANCH", "Head Office")
    SELLER_ADDRESS = os.environ.get("SELLER_ADDRESS", "-")
    SELLER_EMAIL = os.environ.get("SELLER_EMAIL", "support@example.com")
    SELLER_PHONE = os.environ.get("SELLER_PHONE", "-")
