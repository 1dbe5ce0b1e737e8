"""
Session routes.

Role selection, the onboarding profile and the notification permission.
Everything here is persisted in the session store so a restart lands the
user back in the same view.
"""

from flask import Blueprint

from core.exceptions import ValidationError
from logging_config import get_logger
from models.profile import Role, UserProfile
from modules.sanitize import sanitize_text
from routes.helpers import json_body, session_store
from services.notification_service import NotificationPermission
from services.session_store import (
    NOTIFICATION_PERMISSION_KEY,
    PROFILE_KEY,
    ROLE_KEY,
)


# Module logger
logger = get_logger(__name__)

session_bp = Blueprint("session", __name__, url_prefix="/session")


def _current_role():
    stored = session_store().get(ROLE_KEY)
    return Role.parse(stored) if stored else None


def _current_profile():
    stored = session_store().get(PROFILE_KEY)
    if not isinstance(stored, dict):
        return None
    try:
        return UserProfile.from_dict(stored)
    except ValidationError:
        logger.warning("Stored profile is incomplete; onboarding again")
        return None


def _session_dict():
    role = _current_role()
    profile = _current_profile()
    permission = NotificationPermission.parse(session_store().get(NOTIFICATION_PERMISSION_KEY))
    return {
        "role": role.value if role else None,
        "profile": profile.to_dict() if profile else None,
        "onboarded": role is not None and profile is not None,
        "notification_permission": permission.value,
    }


@session_bp.route("", methods=["GET"])
def current():
    return {"session": _session_dict()}


@session_bp.route("/profile", methods=["GET"])
def get_profile():
    profile = _current_profile()
    return {"profile": profile.to_dict() if profile else None}


@session_bp.route("/profile", methods=["POST"])
def save_profile():
    """
    Onboarding.

    Body: role, name, contact, photo_url (optional)
    """
    data = json_body()
    role = Role.parse(data.get("role"))
    profile = UserProfile(
        name=sanitize_text(data.get("name"), 100),
        contact=sanitize_text(data.get("contact"), 100),
        photo_url=sanitize_text(data.get("photo_url"), 500) or None,
    )
    store = session_store()
    store.set(ROLE_KEY, role.value)
    store.set(PROFILE_KEY, profile.to_dict())
    logger.info(f"Onboarded {profile.name} as {role.value}")
    return {"session": _session_dict()}, 201


@session_bp.route("/role", methods=["POST"])
def switch_role():
    """Body: {"role": ...}. Omitting ``role`` toggles between the two views."""
    data = json_body()
    if data.get("role"):
        role = Role.parse(data.get("role"))
    else:
        role = (_current_role() or Role.OPERATOR).toggled()
    session_store().set(ROLE_KEY, role.value)
    logger.info(f"Switched to the {role.value} view")
    return {"session": _session_dict()}


@session_bp.route("/notifications/permission", methods=["POST"])
def notification_permission():
    """Record the browser's answer to the notification prompt."""
    raw = str(json_body().get("permission") or "").strip().lower()
    if raw not in {p.value for p in NotificationPermission}:
        raise ValidationError("permission", f"Unknown permission: {raw!r}")
    session_store().set(NOTIFICATION_PERMISSION_KEY, raw)
    return {"session": _session_dict()}
