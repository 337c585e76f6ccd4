"""
Configuration for the care billing engine.
Centralizes environment-driven settings.
"""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    """Central configuration class for the application."""

    VERSION: str = "1.0.0"

    # Database configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///care_billing.db")
    SQL_ECHO: bool = _flag("SQL_ECHO", "False")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None

    # API
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "")

    # Invoice numbering
    INVOICE_NUMBER_ATTEMPTS: int = int(os.getenv("INVOICE_NUMBER_ATTEMPTS", "5"))

    # Notification delivery (SMTP sender is used only when SMTP_HOST is set)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_SSL: bool = _flag("SMTP_USE_SSL", "False")
    NOTIFY_FROM_EMAIL: str = os.getenv("NOTIFY_FROM_EMAIL", "billing@localhost")

    def smtp_enabled(self) -> bool:
        return bool(self.SMTP_HOST)

    @classmethod
    def from_env(cls) -> Config:
        """Create Config instance from environment variables."""
        return cls()


# Global config instance
config = Config.from_env()
