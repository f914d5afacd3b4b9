"""
Notification Blueprint — the caller's in-app notifications.

    GET  /api/v1/notifications?unread=true&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from flask import Blueprint, current_app, g, jsonify, request

from app.middleware.permission_required import login_required
from app.services.notification import NotificationService
from app.utils.errors import E, api_error
from app.utils.helpers import parse_int

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")


@notification_bp.route("", methods=["GET"])
@login_required
def list_notifications():
    unread_only = request.args.get("unread", "").lower() in ("true", "1")
    limit = min(parse_int(request.args.get("limit"), 50), 200)
    offset = max(parse_int(request.args.get("offset"), 0), 0)
    items, total = NotificationService.list_for_recipient(
        g.current_user.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user.id),
    })


@notification_bp.route("/unread-count", methods=["GET"])
@login_required
def unread_count():
    return jsonify({
        "unread_count": NotificationService.unread_count(g.current_user.id),
        "poll_seconds": current_app.config.get("NOTIFICATION_POLL_SECONDS", 30),
    })


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, g.current_user.id)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    return jsonify({"marked": count})
