# Overview: Flask API routes for reporting; dashboard metrics and the due-date calendar.

from flask import Blueprint, request, jsonify

from ..services import dashboard_service
from ..validation import ValidationError, TransientIOError
from ..decorators import require_auth


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    try:
        return jsonify(dashboard_service.get_dashboard_metrics()), 200
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503


@dashboard_bp.get("/calendar")
@require_auth
def calendar_route():
    """
    Query params:
    - year, month: defaults to the current business month
    - include_cancelled: "1" to also list rows replaced by a renegotiation
    """
    include_cancelled = (request.args.get("include_cancelled") or "").lower() in ("1", "true", "yes")
    try:
        calendar = dashboard_service.get_due_calendar(
            request.args.get("year"),
            request.args.get("month"),
            include_cancelled=include_cancelled,
        )
        return jsonify(calendar), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
