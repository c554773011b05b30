from flask import Blueprint, current_app, jsonify, request

from auth import require_user
from extensions import db
from models_notifications import Notification


notifications_api = Blueprint("notifications_api", __name__)


def notify(user_id: str, type_: str, title: str, message: str) -> None:
    """Best-effort in-app notification (never raises).

    Runs after the award it reports has been committed, in its own transaction.
    """
    try:
        db.session.add(
            Notification(
                user_id=user_id,
                type=type_,
                title=(title or "")[:120],
                message=message or "",
            )
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.warning("Notification for %s could not be saved", user_id, exc_info=True)


@notifications_api.get("/api/notifications")
def list_notifications():
    user_id = require_user()
    unread_only = (request.args.get("unread") or "") in ("1", "true")

    q = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        q = q.filter(Notification.read.is_(False))
    items = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()

    unread = Notification.query.filter_by(user_id=user_id, read=False).count()
    return jsonify({"success": True, "notifications": [n.to_dict() for n in items], "unread_count": unread})


@notifications_api.post("/api/notifications/<int:notification_id>/read")
def mark_notification_read(notification_id: int):
    user_id = require_user()
    n = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not n:
        return jsonify({"success": False, "error": "not_found", "message": "Notification not found"}), 404
    n.read = True
    db.session.commit()
    return jsonify({"success": True, "notification": n.to_dict()})
