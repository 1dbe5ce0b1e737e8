"""
PickIT - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the session store and restores the shop identifier
2. Creates the job lifecycle machine (single mutation point)
3. Creates the payment and pairing services that feed it
4. Registers route blueprints
5. Sets up JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling (commands + snapshot polling)
    └── Cleanup on shutdown

    Payment Threads (one per payment, "Pay-<job>")
    └── Re-enter the machine once with the payment result

    Pairing Timer ("Pair-<shop>")
    └── Commits a scanned shop after the confirmation hold

Every state change goes through the lifecycle machine; views only read the
snapshot it publishes.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.exceptions import PickItError
from models.shop import RateTable, Shop
from modules.estimator import ReadyTimeEstimator
from modules.location import LocationResolver
from modules.pdf_analyzer import PDFAnalyzer
from modules.shop_id import generate_shop_id, is_shop_id
from routes import register_blueprints
from services.job_service import JobLifecycleMachine
from services.notification_service import (
    NotificationOutbox,
    NotificationPermission,
    OutboxAudioBackend,
    OutboxNotificationBackend,
    build_ready_dispatcher,
)
from services.handshake_service import HandshakeService
from services.payment_service import PaymentService, SimulatedPaymentGateway
from services.session_store import (
    NOTIFICATION_PERMISSION_KEY,
    OPERATOR_SHOP_ID_KEY,
    SessionStore,
)


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _get_base_path() -> Path:
    """
    Get the base path for the application.

    In a frozen bundle: Returns the directory containing the executable
    In development: Returns the directory containing app.py
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def _resolve_shop_id(configured: str, store: SessionStore) -> str:
    """
    Pick the shop identifier: configured value, then the stored one, then a
    freshly generated one (stored so the printed code stays valid).
    """
    if configured:
        if not is_shop_id(configured):
            raise ValueError(f"SHOP_ID must look like SHOP-XXXXXX, got {configured!r}")
        return configured

    stored = store.get(OPERATOR_SHOP_ID_KEY)
    if is_shop_id(stored):
        return stored

    shop_id = generate_shop_id()
    store.set(OPERATOR_SHOP_ID_KEY, shop_id)
    logger.info(f"Generated shop identifier {shop_id}")
    return shop_id


def create_app(config_object: str | type = "config.Config") -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path or class passed to app.config.from_object

    Returns:
        Configured Flask application

    Raises:
        ValueError: If SHOP_ID is set but malformed
    """
    # Load .env from base path (next to executable in production)
    # Use override=True so .env file always takes precedence over shell environment
    env_file = _get_base_path() / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)

    # Create Flask app
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        app_name="pickit",
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting PickIT in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SESSION STORE + SHOP
    # =========================================================================

    store = SessionStore(app.config.get("SESSION_STORE_PATH") or None)
    app.config["SESSION_STORE"] = store

    shop = Shop.create(
        rates=RateTable.from_dict(app.config["DEFAULT_RATES"]),
        printer_count=app.config["DEFAULT_PRINTER_COUNT"],
        ppm=app.config["DEFAULT_PPM"],
        shop_id=_resolve_shop_id(app.config.get("SHOP_ID", ""), store),
    )

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    outbox = NotificationOutbox(maxlen=app.config["NOTIFICATION_OUTBOX_SIZE"])
    app.config["NOTIFICATION_OUTBOX"] = outbox

    dispatcher = build_ready_dispatcher(
        audio=OutboxAudioBackend(outbox),
        notifier=OutboxNotificationBackend(outbox),
        permission=lambda: NotificationPermission.parse(store.get(NOTIFICATION_PERMISSION_KEY)),
    )

    machine = JobLifecycleMachine(
        shop,
        dispatcher=dispatcher,
        estimator=ReadyTimeEstimator(
            submitted_minutes=app.config["SUBMITTED_EXPECTED_MINUTES"],
            handling_minutes=app.config["QUEUE_HANDLING_MINUTES"],
        ),
    )
    app.config["LIFECYCLE_MACHINE"] = machine

    payment_service = PaymentService(
        machine,
        gateway=SimulatedPaymentGateway(
            processing_seconds=app.config["PAYMENT_PROCESSING_SECONDS"],
            verifying_seconds=app.config["PAYMENT_VERIFYING_SECONDS"],
        ),
        confirm_seconds=app.config["PAYMENT_CONFIRM_SECONDS"],
    )
    app.config["PAYMENT_SERVICE"] = payment_service

    app.config["HANDSHAKE_SERVICE"] = HandshakeService(
        machine, store, confirm_seconds=app.config["PAIRING_CONFIRM_SECONDS"]
    )

    # =========================================================================
    # HELPER MODULES
    # =========================================================================

    app.config["PDF_ANALYZER"] = PDFAnalyzer()
    app.config["LOCATION_RESOLVER"] = LocationResolver(
        app.config.get("LOCATION_LOOKUP_URL", ""),
        timeout_seconds=app.config["LOCATION_LOOKUP_TIMEOUT"],
    )

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        payment_service.shutdown()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(PickItError)
    def handle_pickit_error(e: PickItError):
        logger.info(f"{type(e).__name__}: {e}")
        return e.to_dict(), e.http_status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        max_mb = app.config.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024) / (1024 * 1024)
        return {
            "error": "FileTooLarge",
            "message": f"File too large. Maximum upload size is {max_mb:.0f} MB.",
            "details": {},
        }, 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.name, "message": e.description, "details": {}}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {
            "error": "InternalServerError",
            "message": "An unexpected error occurred. Please try again.",
            "details": {},
        }, 500

    logger.info(f"Application initialized for shop {shop.shop_id}")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode, threaded=True)
