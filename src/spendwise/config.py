"""
Spendwise - Configuration

Settings are read from the environment once, after loading a local .env file
with python-dotenv. get_config() bundles them into the dict handed to Flask,
the scheduler and the notifier; tests pass overrides on top of it.

Author: Spendwise contributors
License: MIT
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables (for SECRET_KEY, SMTP settings, etc.)
load_dotenv()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Flask / sessions ---
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Database ---
DATABASE_PATH = os.getenv(
    "DATABASE_PATH",
    str(Path(__file__).resolve().parent / "data" / "spendwise.db"),
)

# --- Email ---
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "console")  # console | smtp
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
EMAIL_FROM = os.getenv("EMAIL_FROM", "Spendwise <noreply@spendwise.local>")

# --- Gemini (categorization, receipt scanning, insights) ---
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# --- Receipts ---
# Unset: a "receipts" directory beside the database file
RECEIPTS_DIR = os.getenv("RECEIPTS_DIR")

# --- Background jobs ---
RECURRING_JOB_CRON = os.getenv("RECURRING_JOB_CRON", "0 0 * * *")
ALERT_JOB_CRON = os.getenv("ALERT_JOB_CRON", "0 */6 * * *")
RESET_JOB_CRON = os.getenv("RESET_JOB_CRON", "0 1 * * *")
ENABLE_SCHEDULER = _env_bool("ENABLE_SCHEDULER", False)
ENABLE_JOB_ENDPOINTS = _env_bool("ENABLE_JOB_ENDPOINTS", False)


def get_config(**overrides):
    """Return the settings as a plain dict, with keyword overrides applied."""
    config = {
        "SECRET_KEY": SECRET_KEY,
        "SESSION_COOKIE_SECURE": SESSION_COOKIE_SECURE,
        "SESSION_COOKIE_SAMESITE": "None" if SESSION_COOKIE_SECURE else "Lax",
        "CORS_ORIGINS": CORS_ORIGINS,
        "LOG_LEVEL": LOG_LEVEL,
        "DATABASE_PATH": DATABASE_PATH,
        "EMAIL_BACKEND": EMAIL_BACKEND,
        "SMTP_HOST": SMTP_HOST,
        "SMTP_PORT": SMTP_PORT,
        "SMTP_USER": SMTP_USER,
        "SMTP_PASSWORD": SMTP_PASSWORD,
        "SMTP_USE_TLS": SMTP_USE_TLS,
        "EMAIL_FROM": EMAIL_FROM,
        "GOOGLE_API_KEY": GOOGLE_API_KEY,
        "GEMINI_MODEL": GEMINI_MODEL,
        "RECEIPTS_DIR": RECEIPTS_DIR,
        "RECURRING_JOB_CRON": RECURRING_JOB_CRON,
        "ALERT_JOB_CRON": ALERT_JOB_CRON,
        "RESET_JOB_CRON": RESET_JOB_CRON,
        "ENABLE_SCHEDULER": ENABLE_SCHEDULER,
        "ENABLE_JOB_ENDPOINTS": ENABLE_JOB_ENDPOINTS,
    }
    config.update(overrides)
    return config


def configure_logging(level=None):
    """Configure root logging once for the server, CLI and scheduler."""
    logging.basicConfig(
        level=getattr(logging, str(level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
