# backend/stockchain/config.py
from __future__ import annotations
import os


DISPATCH_POLICY_CLAMP = "clamp"
DISPATCH_POLICY_STRICT = "strict"


def _split_origins(value: str) -> set[str]:
    return {origin.strip() for origin in value.split(",") if origin.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockchain.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockchain.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # How dispatch treats a dispatcher whose ledger holds less than the dispatched quantity:
    # "clamp" deducts what is available and reports the shortfall, "strict" refuses the dispatch.
    DISPATCH_STOCK_POLICY = os.environ.get("DISPATCH_STOCK_POLICY", DISPATCH_POLICY_CLAMP)

    CORS_ALLOWED_ORIGINS = _split_origins(
        os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        )
    )
