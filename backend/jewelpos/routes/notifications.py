# Overview: Flask API routes for WhatsApp reminder settings, preview and dispatch.

from flask import Blueprint, request, jsonify, current_app

from ..services import notification_service
from ..services.whatsapp_client import RelayError
from ..validation import ValidationError, TransientIOError
from ..decorators import require_auth
from jewelpos.time_utils import business_today


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/settings")
@require_auth
def get_settings_route():
    """The api_key is masked; null settings means notifications were never configured."""
    settings = notification_service.get_settings()
    return jsonify({"settings": settings.to_dict() if settings else None}), 200


@notifications_bp.put("/settings")
@require_auth
def save_settings_route():
    """
    Request body (phone and api_key required the first time):
    {
        "phone": "5511999998888",
        "api_key": "123456",
        "send_time": "10:00",
        "lead_days": [3, 2, 0],
        "is_active": true,
        "send_on_weekends": false
    }
    """
    payload = request.get_json(silent=True)
    try:
        settings = notification_service.save_settings(payload)
        return jsonify({"settings": settings.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to save notification settings")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.get("/preview")
@require_auth
def preview_route():
    """The reminder text that would be sent today, or null when nothing is due."""
    today = business_today()
    groups = notification_service.collect_due_reminders(today)
    message = notification_service.format_reminder_message(groups, today) if groups else None
    return jsonify({
        "message": message,
        "installment_count": sum(len(g.items) for g in groups),
        "total_cents": sum(g.total_cents for g in groups),
    }), 200


@notifications_bp.post("/test")
@require_auth
def send_test_route():
    """Optional body {"phone", "api_key"} to test before saving."""
    data = request.get_json(silent=True) or {}
    try:
        text = notification_service.send_test_message(phone=data.get("phone"), api_key=data.get("api_key"))
        return jsonify({"sent": True, "message": text}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RelayError as e:
        return jsonify({"error": str(e), "relay_status": e.status_code}), 502
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to send test notification")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/dispatch")
@require_auth
def dispatch_route():
    """
    Run the reminder job now. Body {"force": true} skips the send-time and
    once-a-day checks (inactive settings and weekends still skip).
    """
    data = request.get_json(silent=True) or {}
    try:
        result = notification_service.dispatch_reminders(force=bool(data.get("force")))
        return jsonify(result.to_dict()), 200
    except RelayError as e:
        return jsonify({"error": str(e), "relay_status": e.status_code}), 502
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to dispatch reminders")
        return jsonify({"error": "Internal server error"}), 500
