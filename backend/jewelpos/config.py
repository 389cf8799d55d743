# backend/jewelpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/jewelpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///jewelpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "password" = token sessions, "demo" = every request runs as the demo user
    AUTH_MODE = os.environ.get("AUTH_MODE", "password")
    DEMO_USERNAME = os.environ.get("DEMO_USERNAME", "demo")

    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "Rubia Joias")
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/Sao_Paulo")

    # Product images (local object storage)
    # Relative paths resolve against the Flask instance folder
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "product-images")
    MEDIA_BASE_URL = os.environ.get("MEDIA_BASE_URL", "/media/product-images")
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    # WhatsApp relay (CallMeBot)
    WHATSAPP_RELAY_URL = os.environ.get("WHATSAPP_RELAY_URL", "https://api.callmebot.com/whatsapp.php")
    WHATSAPP_TIMEOUT_SECONDS = float(os.environ.get("WHATSAPP_TIMEOUT_SECONDS", "15"))
    CATALOG_WHATSAPP_NUMBER = os.environ.get("CATALOG_WHATSAPP_NUMBER", "")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "3"))

    # Bearer session lifetimes
    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if o.strip()
    )
