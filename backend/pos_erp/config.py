# backend/pos_erp/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos_erp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos_erp.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Advisory order locks expire after ten minutes unless extended
    ORDER_LOCK_TTL_SECONDS = int(os.environ.get("ORDER_LOCK_TTL_SECONDS", "600"))

    # Custom prices below COST_FLOOR_RATIO * price1 need an override
    COST_FLOOR_RATIO = float(os.environ.get("COST_FLOOR_RATIO", "0.7"))

    # Product lines sold by packaging (caja, bulto, costal)
    TARA_PRODUCT_LINES = _csv(os.environ.get("TARA_PRODUCT_LINES", "Granos,Aceites"))

    # Roles allowed to authorize below-cost prices and credit over the limit
    OVERRIDE_ROLES = _csv(os.environ.get("OVERRIDE_ROLES", "admin,manager"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
