# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Category tree snapshot and excluded-id closure (seconds)
    CATEGORY_TREE_CACHE_TTL = int(os.environ.get("CATEGORY_TREE_CACHE_TTL", "300"))
    CATEGORY_LIST_CACHE_TTL = int(os.environ.get("CATEGORY_LIST_CACHE_TTL", "300"))

    # Remote shipping calculator (storefront backend)
    SHIPPING_BACKEND_URL = os.environ.get("SHIPPING_BACKEND_URL", "http://127.0.0.1:8080")
    SHIPPING_BACKEND_TIMEOUT = float(os.environ.get("SHIPPING_BACKEND_TIMEOUT", "5"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "72"))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }
