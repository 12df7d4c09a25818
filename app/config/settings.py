# app/config/settings.py
# Environment-driven settings for the Project Planner API

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} must be set in the environment or .env file")
    return value


class Settings:
    """Application settings read once from the environment"""

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./project_planner.db")

    # Authentication
    SECRET_KEY = _required("SECRET_KEY")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
    MIN_PASSWORD_LENGTH = 8
    TEMPORARY_PASSWORD_MINUTES = int(os.getenv("TEMPORARY_PASSWORD_MINUTES", 30))

    # Outbound email (Resend)
    RESEND_API_KEY = os.getenv("RESEND_API_KEY")
    EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Project Planner <noreply@projectplanner.app>")
    REPORT_FROM_ADDRESS = os.getenv("REPORT_FROM_ADDRESS", EMAIL_FROM_ADDRESS)

    # Links embedded in emails
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5173").rstrip("/")
    EXTERNAL_PORTAL_URL = os.getenv("EXTERNAL_PORTAL_URL", f"{APP_BASE_URL}/external-login")

    # CORS
    CORS_ORIGINS = _as_list(os.getenv("CORS_ORIGINS", "*"))

    # Scheduling
    REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "Africa/Nairobi")
    SCHEDULER_ENABLED = _as_bool(os.getenv("SCHEDULER_ENABLED", "true"))
    PRESENCE_TIMEOUT_MINUTES = int(os.getenv("PRESENCE_TIMEOUT_MINUTES", 5))

    # Link previews on chat messages
    LINK_PREVIEW_ENABLED = _as_bool(os.getenv("LINK_PREVIEW_ENABLED", "true"))
    LINK_PREVIEW_TIMEOUT = float(os.getenv("LINK_PREVIEW_TIMEOUT", 5))

    @classmethod
    def is_sqlite(cls) -> bool:
        return cls.DATABASE_URL.startswith("sqlite")


settings = Settings()
