# Overview: Flask API routes for low-stock notices.

from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
def list_notifications():
    """Unresolved notices, newest first. ?all=1 includes resolved ones."""
    try:
        include_resolved = request.args.get("all") in {"1", "true", "yes"}
        notices = notification_service.list_notices(include_resolved=include_resolved)
        return jsonify({"items": [n.to_dict() for n in notices], "count": len(notices)})
    except Exception as e:
        return json_error(e, "list notifications")


@notifications_bp.post("/<int:notice_id>/resolve")
def resolve_notification(notice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        notice = notification_service.resolve_notice(notice_id, operator=data.get("operator"))
        return jsonify({"notification": notice.to_dict()})
    except Exception as e:
        return json_error(e, "resolve notification")
