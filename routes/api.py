"""
API routes (polling endpoints).

Handles:
- /api/state - Published snapshot both views render from
- /health    - Health check endpoint
"""

from flask import Blueprint

from logging_config import get_logger
from modules.location import directions_url
from routes.helpers import handshake, machine, payments


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/api/state", methods=["GET"])
def state():
    """
    Everything a view needs to render, in one poll.

    ``state.version`` only changes when a command commits, so a view can
    skip re-rendering when it sees the same version twice.
    """
    snapshot = machine().snapshot()
    active = snapshot.active_job
    payment = payments().status(active.job_id) if active else None
    return {
        "state": snapshot.to_dict(),
        "pairing": handshake().status().to_dict(),
        "payment": payment.to_dict() if payment else None,
        "directions_url": directions_url(snapshot.shop),
    }


@api_bp.route("/health", methods=["GET"])
def health():
    """
    Health check endpoint.

    Returns service status for monitoring.
    """
    snapshot = machine().snapshot()
    return {
        "status": "healthy",
        "shop_id": snapshot.shop.shop_id,
        "shop_configured": snapshot.shop.is_configured,
        "active_job": snapshot.active_job.status.value if snapshot.active_job else None,
        "version": snapshot.version,
    }
