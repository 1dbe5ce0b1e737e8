"""
Configuration for PickIT.

Values come from the environment, with a .env file loaded first so local
overrides do not need to be exported in the shell.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.environ.get(name, default))


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB uploads
    SESSION_COOKIE_NAME = "pickit_session"
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    TESTING = False

    # Key-value store for role, profile and shop binding.
    # Empty string keeps the store in memory only.
    SESSION_STORE_PATH = os.environ.get(
        "SESSION_STORE_PATH", str(BASE_DIR / "instance" / "session_store.json")
    )

    # Fixed shop identifier (SHOP-XXXXXX). Empty generates one on first
    # start and keeps it in the session store.
    SHOP_ID = os.environ.get("SHOP_ID", "")

    # ==========================================================================
    # Shop defaults (used when a shop record is first created)
    # ==========================================================================
    # A shop starts unconfigured with these values pre-filled in the setup
    # flow. Rates are per page, keyed by color mode and sides:
    #   bw_ss    - monochrome, single-sided
    #   bw_ds    - monochrome, double-sided
    #   color_ss - color, single-sided
    #   color_ds - color, double-sided
    # ==========================================================================
    DEFAULT_PRINTER_COUNT = _env_int("DEFAULT_PRINTER_COUNT", "1")
    DEFAULT_PPM = _env_int("DEFAULT_PPM", "20")
    DEFAULT_RATES = {
        "bw_ss": _env_float("DEFAULT_RATE_BW_SS", "2"),
        "bw_ds": _env_float("DEFAULT_RATE_BW_DS", "3"),
        "color_ss": _env_float("DEFAULT_RATE_COLOR_SS", "10"),
        "color_ds": _env_float("DEFAULT_RATE_COLOR_DS", "15"),
    }

    # ==========================================================================
    # Ready-time estimation
    # ==========================================================================
    # A freshly submitted job shows a flat estimate. Once paid, the estimate
    # restarts from the payment time:
    #   minutes = QUEUE_HANDLING_MINUTES + ceil(sheets / (ppm * printers))
    # ==========================================================================
    SUBMITTED_EXPECTED_MINUTES = _env_int("SUBMITTED_EXPECTED_MINUTES", "8")
    QUEUE_HANDLING_MINUTES = _env_int("QUEUE_HANDLING_MINUTES", "5")

    # Simulated payment phases (seconds)
    PAYMENT_PROCESSING_SECONDS = _env_float("PAYMENT_PROCESSING_SECONDS", "1.5")
    PAYMENT_VERIFYING_SECONDS = _env_float("PAYMENT_VERIFYING_SECONDS", "2.0")
    PAYMENT_CONFIRM_SECONDS = _env_float("PAYMENT_CONFIRM_SECONDS", "2.5")

    # Confirmation hold between a successful scan and the binding commit
    PAIRING_CONFIRM_SECONDS = _env_float("PAIRING_CONFIRM_SECONDS", "2.0")

    # Ready alerts kept for the customer view to poll
    NOTIFICATION_OUTBOX_SIZE = _env_int("NOTIFICATION_OUTBOX_SIZE", "20")

    # Geocoding lookup used by the shop setup flow (Nominatim-compatible).
    # Empty string disables the lookup; operators then keep manual input.
    LOCATION_LOOKUP_URL = os.environ.get(
        "LOCATION_LOOKUP_URL", "https://nominatim.openstreetmap.org/search"
    )
    LOCATION_LOOKUP_TIMEOUT = _env_float("LOCATION_LOOKUP_TIMEOUT", "5.0")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration: in-memory store, no waits, no network."""
    DEBUG = False
    TESTING = True
    SESSION_STORE_PATH = ""
    PAYMENT_PROCESSING_SECONDS = 0.0
    PAYMENT_VERIFYING_SECONDS = 0.0
    PAYMENT_CONFIRM_SECONDS = 0.0
    PAIRING_CONFIRM_SECONDS = 0.0
    LOCATION_LOOKUP_URL = ""
    SHOP_ID = "SHOP-TEST01"
