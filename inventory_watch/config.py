"""Configuration loader.

Reads environment variables and `.env` to configure the service.
"""

from __future__ import annotations

import os
from typing import Optional, List
from pathlib import Path

from dotenv import load_dotenv

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _get_list(name: str) -> List[str]:
    raw = _get_env(name, "") or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


# ---- Scheduling --------------------------------------------------------------

# Interval in minutes between runs when using the built-in loop trigger.
SCRAPE_INTERVAL_MINUTES: int = _parse_int(_get_env("SCRAPE_INTERVAL_MINUTES"), 10)

# Per-request timeout for page fetches (seconds).
HTTP_TIMEOUT_SECONDS: float = _parse_float(_get_env("HTTP_TIMEOUT_SECONDS"), 20.0)

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")

# ---- Persistence -------------------------------------------------------------

# Path to SQLite database.
SQLITE_DB_PATH: str = _get_env("SQLITE_DB_PATH", "inventory_watch.db")

# How long a transaction waits on a competing writer before giving up.
SQLITE_BUSY_TIMEOUT_SECONDS: float = _parse_float(_get_env("SQLITE_BUSY_TIMEOUT_SECONDS"), 5.0)

# ---- Email -------------------------------------------------------------------

GMAIL_SENDER: Optional[str] = _get_env("GMAIL_SENDER")
GMAIL_APP_PASSWORD: Optional[str] = _get_env("GMAIL_APP_PASSWORD")  # app password, not the account one
GMAIL_RECIPIENTS: List[str] = _get_list("GMAIL_RECIPIENTS")  # comma-separated

# Reference a message ID to keep things in one thread. Pick this up from a past
# send event. Only used when seeding subscriptions for single-provider setups.
MESSAGE_ID_REF: Optional[str] = _get_env("MESSAGE_ID_REF") or None

EMAIL_FROM: Optional[str] = _get_env("EMAIL_FROM") or GMAIL_SENDER
EMAIL_FROM_NAME: str = _get_env("EMAIL_FROM_NAME", "Inventory Watch")
EMAIL_SMTP_HOST: str = _get_env("EMAIL_SMTP_HOST", "smtp.gmail.com")
EMAIL_SMTP_PORT: int = _parse_int(_get_env("EMAIL_SMTP_PORT"), 587)  # 587 (TLS) or 465 (SSL)
EMAIL_USE_TLS: bool = _parse_bool(_get_env("EMAIL_USE_TLS", "true"), True)  # if False and port=465, SSL will be used
EMAIL_TIMEOUT_SECONDS: float = _parse_float(_get_env("EMAIL_TIMEOUT_SECONDS"), 20.0)

# ---- Validation --------------------------------------------------------------

def validate() -> None:
    """Validate required configuration parameters."""
    if not (GMAIL_SENDER and GMAIL_APP_PASSWORD):
        raise RuntimeError(
            "GMAIL_SENDER and GMAIL_APP_PASSWORD must be set. See .env.example for details."
        )


__all__ = [
    # Scheduling
    "SCRAPE_INTERVAL_MINUTES",
    "HTTP_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    # Persistence
    "SQLITE_DB_PATH",
    "SQLITE_BUSY_TIMEOUT_SECONDS",
    # Email
    "GMAIL_SENDER", "GMAIL_APP_PASSWORD", "GMAIL_RECIPIENTS", "MESSAGE_ID_REF",
    "EMAIL_FROM", "EMAIL_FROM_NAME", "EMAIL_SMTP_HOST", "EMAIL_SMTP_PORT",
    "EMAIL_USE_TLS", "EMAIL_TIMEOUT_SECONDS",
    # Helpers
    "validate",
]
