"""Routes for the notifications blueprint."""

from flask import g, jsonify

from coliving.auth.decorators import login_required
from coliving.core.store import get_store

from . import bp
from .services import NotificationService


@bp.route("/", methods=["GET"])
@login_required
def list_notifications():
    """Return the caller's notifications, newest first."""
    notifications = NotificationService(get_store()).list_for_user(g.user["uid"])
    unread = sum(1 for n in notifications if not n.get("read"))
    return jsonify({"notifications": notifications, "unreadCount": unread})


@bp.route("/<string:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    NotificationService(get_store()).mark_read(notification_id, g.user["uid"])
    return jsonify({"status": "success"})


@bp.route("/read", methods=["POST"])
@login_required
def mark_all_read():
    updated = NotificationService(get_store()).mark_all_read(g.user["uid"])
    return jsonify({"status": "success", "updated": updated})


@bp.route("/<string:notification_id>", methods=["DELETE"])
@login_required
def delete_notification(notification_id):
    NotificationService(get_store()).delete(notification_id, g.user["uid"])
    return jsonify({"status": "success"})
