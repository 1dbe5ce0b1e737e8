"""
Customer routes.

The customer view's command surface:
- /customer/shop          - Paired shop details and directions link
- /customer/quote         - Price for the chosen options
- /customer/jobs          - Submit a job (PDF upload or JSON)
- /customer/jobs/<id>/... - Withdraw, pay, poll or cancel payment
- /customer/notifications - Ready alerts to play/display

Every command goes through the lifecycle machine; responses carry the
resulting state so the view never keeps its own copy.
"""

from flask import Blueprint, current_app, request

from core.exceptions import ShopUnavailableError, ValidationError
from logging_config import get_logger
from models.profile import Role
from modules import pricing
from modules.location import directions_url
from modules.sanitize import MAX_FILENAME_LENGTH, sanitize_filename, sanitize_text
from routes.helpers import (
    handshake,
    json_body,
    machine,
    outbox,
    parse_bool,
    parse_int,
    payments,
)


# Module logger
logger = get_logger(__name__)

customer_bp = Blueprint("customer", __name__, url_prefix="/customer")

ALLOWED_EXTENSIONS = {"pdf"}


def _allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def _display_name(filename: str) -> str:
    secured = sanitize_filename(filename)
    if _allowed_file(secured):
        return secured
    # secure_filename drops non-ASCII stems entirely
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    return sanitize_text(base, MAX_FILENAME_LENGTH)


@customer_bp.route("/shop", methods=["GET"])
def shop():
    """The shop this session is paired with."""
    bound = handshake().bound_shop_id
    current = machine().shop
    if bound is None or bound != current.shop_id:
        raise ShopUnavailableError(bound or "none", "customer is not connected to this shop")
    return {
        "shop": current.to_dict(),
        "directions_url": directions_url(current),
    }


@customer_bp.route("/quote", methods=["GET"])
def quote():
    """
    Price a prospective job without submitting it.

    Query: color, duplex, pages
    """
    is_color = parse_bool(request.args.get("color"), "color")
    is_double_sided = parse_bool(request.args.get("duplex"), "duplex", default=True)
    page_count = parse_int(request.args.get("pages", 0), "pages")
    try:
        return pricing.quote(machine().shop.rates, is_color, is_double_sided, page_count)
    except ValueError as e:
        raise ValidationError("pages", str(e)) from e


@customer_bp.route("/jobs", methods=["POST"])
def submit_job():
    """
    Submit the session's job.

    Multipart: ``file`` (PDF, page count read from the document) plus
    ``is_color`` / ``is_double_sided`` form fields.
    JSON: ``file_name``, ``page_count``, ``is_color``, ``is_double_sided``.
    """
    data = json_body()
    upload = request.files.get("file")

    if upload is not None and upload.filename:
        if not _allowed_file(upload.filename):
            raise ValidationError("file", "Only PDF files are accepted")
        file_name = _display_name(upload.filename)
        analysis = current_app.config["PDF_ANALYZER"].analyze(upload.stream)
        page_count = analysis["pages"]
    else:
        file_name = sanitize_text(data.get("file_name"))
        page_count = parse_int(data.get("page_count"), "page_count")

    job = machine().submit(
        Role.CUSTOMER,
        handshake().bound_shop_id,
        file_name,
        page_count,
        is_color=parse_bool(data.get("is_color"), "is_color"),
        is_double_sided=parse_bool(data.get("is_double_sided"), "is_double_sided", default=True),
    )
    return {"job": job.to_dict(), "state": machine().snapshot().to_dict()}, 201


@customer_bp.route("/jobs/<job_id>/withdraw", methods=["POST"])
def withdraw_job(job_id: str):
    """Go back to the options screen, dropping the unpaid job."""
    snapshot = machine().withdraw(Role.CUSTOMER, job_id)
    return {"state": snapshot.to_dict()}


@customer_bp.route("/jobs/<job_id>/payment", methods=["POST"])
def start_payment(job_id: str):
    """Start paying with the chosen app; poll the GET endpoint for progress."""
    app_id = sanitize_text(json_body().get("app_id"), 40) or "upi"
    attempt = payments().start(job_id, app_id)
    return {"payment": attempt.to_dict()}, 202


@customer_bp.route("/jobs/<job_id>/payment", methods=["GET"])
def payment_status(job_id: str):
    attempt = payments().status(job_id)
    if attempt is None:
        return {"payment": None, "state": machine().snapshot().to_dict()}, 404
    return {"payment": attempt.to_dict(), "state": machine().snapshot().to_dict()}


@customer_bp.route("/jobs/<job_id>/payment", methods=["DELETE"])
def cancel_payment(job_id: str):
    """Payment sheet closed. Refused once the payment is being committed."""
    attempt = payments().cancel(job_id)
    return {"payment": attempt.to_dict()}


@customer_bp.route("/notifications", methods=["GET"])
def notifications():
    """Alerts newer than ``after`` (the last seq the view handled)."""
    after = parse_int(request.args.get("after", 0), "after")
    entries = outbox().since(after)
    return {"notifications": [entry.to_dict() for entry in entries]}
