# backend/bookstore/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bookstore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bookstore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Settlement policy. Commission is in basis points (250 = 2.5%).
    # A value saved through the admin settings endpoint takes precedence.
    COMMISSION_RATE_BPS = _env_int("COMMISSION_RATE_BPS", 250)
    SHIPPING_ALLOCATION_POLICY = os.environ.get("SHIPPING_ALLOCATION_POLICY", "proportional")
    PLATFORM_PAYEE_CODE = os.environ.get("PLATFORM_PAYEE_CODE", "admin")

    # Checkout pricing (all amounts in paise)
    FREE_SHIPPING_THRESHOLD_CENTS = _env_int("FREE_SHIPPING_THRESHOLD_CENTS", 200_000)
    LOCAL_SHIPPING_CENTS = _env_int("LOCAL_SHIPPING_CENTS", 7_000)
    STANDARD_SHIPPING_CENTS = _env_int("STANDARD_SHIPPING_CENTS", 10_000)
    # West Bengal PIN codes; 744000-799999 belongs to other states
    LOCAL_PINCODE_RANGES = ((700000, 743999),)
    TAX_RATE_BPS = _env_int("TAX_RATE_BPS", 0)

    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "BK")
    PAYOUTS_PER_PAGE = _env_int("PAYOUTS_PER_PAGE", 20)
