"""
Pairing routes.

The customer's browser runs the camera and the code decoder; it reports
permission results and decoded frames here, and reads back whether the
decoder should keep running.
"""

from flask import Blueprint

from core.exceptions import CameraPermissionError
from logging_config import get_logger
from modules.sanitize import sanitize_text
from routes.helpers import handshake, json_body, parse_bool


# Module logger
logger = get_logger(__name__)

pairing_bp = Blueprint("pairing", __name__, url_prefix="/pairing")


def _denied_response(status):
    error = CameraPermissionError(status.message or "Camera permission denied")
    return {"pairing": status.to_dict(), "error": error.to_dict()}


@pairing_bp.route("", methods=["GET"])
def status():
    return {"pairing": handshake().status().to_dict()}


@pairing_bp.route("/start", methods=["POST"])
def start():
    """Open the scanner (also how a paired customer switches shops)."""
    return {"pairing": handshake().request_permission().to_dict()}


@pairing_bp.route("/permission", methods=["POST"])
def permission():
    """Body: {"granted": bool, "reason": str}"""
    data = json_body()
    if parse_bool(data.get("granted"), "granted"):
        return {"pairing": handshake().permission_granted().to_dict()}
    reason = sanitize_text(data.get("reason")) or "Camera permission denied"
    return _denied_response(handshake().permission_denied(reason))


@pairing_bp.route("/camera-error", methods=["POST"])
def camera_error():
    reason = sanitize_text(json_body().get("reason")) or "Camera stopped unexpectedly"
    return _denied_response(handshake().camera_failed(reason))


@pairing_bp.route("/frame", methods=["POST"])
def frame():
    """
    One decoded frame.

    Body: {"text": "<decoded string>"}. Frames without a shop code are
    ignored; ``matched`` is the shop identifier when one was accepted.
    """
    text = json_body().get("text")
    matched = handshake().feed(text if isinstance(text, str) else None)
    return {"matched": matched, "pairing": handshake().status().to_dict()}


@pairing_bp.route("/retry", methods=["POST"])
def retry():
    return {"pairing": handshake().retry().to_dict()}


@pairing_bp.route("/cancel", methods=["POST"])
def cancel():
    return {"pairing": handshake().cancel().to_dict()}


@pairing_bp.route("/disconnect", methods=["POST"])
def disconnect():
    """Forget the paired shop."""
    return {"pairing": handshake().disconnect().to_dict()}
