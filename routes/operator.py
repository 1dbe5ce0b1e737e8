"""
Operator routes.

- /operator/shop                 - Shop record and its scannable code
- /operator/setup                - One-time shop setup
- /operator/rates                - Edit the rate table
- /operator/pause                - Pause or resume new requests
- /operator/jobs/<id>/status     - Advance the active job
- /operator/location/verify      - Resolve the shop's address
- /operator/history              - Collected jobs and revenue
"""

from flask import Blueprint, current_app

from core.exceptions import LocationLookupError, ValidationError
from logging_config import get_logger
from models.print_job import JobStatus
from models.profile import Role
from models.shop import RATE_KEYS, RateTable
from modules.location import LocationResult
from modules.sanitize import sanitize_text
from routes.helpers import json_body, machine, parse_bool, parse_float, parse_int


# Module logger
logger = get_logger(__name__)

operator_bp = Blueprint("operator", __name__, url_prefix="/operator")


def _rates_from(data) -> RateTable:
    """Read the four rates from a request body (flat or under "rates")."""
    source = data.get("rates") if isinstance(data.get("rates"), dict) else data
    values = {}
    for key in RATE_KEYS:
        if key not in source:
            raise ValidationError(key, f"Missing rate '{key}'")
        values[key] = parse_float(source[key], key)
    return RateTable.from_dict(values)


@operator_bp.route("/shop", methods=["GET"])
def shop():
    """The shop record; ``qr_payload`` is what the shop's code encodes."""
    current = machine().shop
    return {"shop": current.to_dict(), "qr_payload": current.shop_id}


@operator_bp.route("/setup", methods=["POST"])
def setup():
    """
    Finish shop setup.

    Body: name, location, printer_count, ppm, rates{bw_ss, bw_ds, color_ss, color_ds}
    """
    data = json_body()
    shop = machine().configure_shop(
        Role.OPERATOR,
        name=sanitize_text(data.get("name")),
        location=sanitize_text(data.get("location")),
        printer_count=parse_int(data.get("printer_count", 1), "printer_count"),
        ppm=parse_int(data.get("ppm", 20), "ppm"),
        rates=_rates_from(data),
    )
    return {"shop": shop.to_dict()}, 201


@operator_bp.route("/rates", methods=["PUT"])
def update_rates():
    shop = machine().update_rates(Role.OPERATOR, _rates_from(json_body()))
    return {"shop": shop.to_dict()}


@operator_bp.route("/pause", methods=["POST"])
def pause():
    """Body: {"paused": true|false}. Omitting ``paused`` toggles."""
    data = json_body()
    if "paused" in data:
        paused = parse_bool(data.get("paused"), "paused")
    else:
        paused = not machine().shop.is_paused
    shop = machine().set_paused(Role.OPERATOR, paused)
    return {"shop": shop.to_dict()}


@operator_bp.route("/jobs/<job_id>/status", methods=["POST"])
def advance_job(job_id: str):
    """Body: {"status": "PRINTING" | "READY" | "COLLECTED"}"""
    raw = str(json_body().get("status") or "").strip().upper()
    try:
        status = JobStatus(raw)
    except ValueError:
        raise ValidationError("status", f"Unknown status: {raw!r}") from None
    snapshot = machine().advance(Role.OPERATOR, job_id, status)
    return {"state": snapshot.to_dict()}


@operator_bp.route("/location/verify", methods=["POST"])
def verify_location():
    """
    Resolve the shop's address.

    A failed lookup is not an error for the operator: the manually entered
    location stays and the response says the address was not resolved.
    """
    data = json_body()
    current = machine().shop
    name = sanitize_text(data.get("name")) or current.name
    location = sanitize_text(data.get("location")) or current.location

    resolver = current_app.config["LOCATION_RESOLVER"]
    try:
        result: LocationResult = resolver.resolve(name, location)
    except LocationLookupError as e:
        logger.info(f"Keeping manual location: {e}")
        return {"resolved": False, "message": e.message, "shop": current.to_dict()}

    shop = machine().apply_location(Role.OPERATOR, result)
    return {
        "resolved": True,
        "address": result.address,
        "maps_url": result.maps_url,
        "shop": shop.to_dict(),
    }


@operator_bp.route("/history", methods=["GET"])
def history():
    snapshot = machine().snapshot()
    return {
        "history": [job.to_dict() for job in snapshot.history],
        "count": snapshot.history_count,
        "revenue": snapshot.history_revenue,
    }
