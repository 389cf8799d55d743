# Overview: Flask API routes for single sale installments; manual edits and the paid toggle.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import installment_service
from ..validation import ValidationError, NotFoundError, ConflictError, TransientIOError
from ..decorators import require_auth
from jewelpos.time_utils import business_today


installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


@installments_bp.patch("/<int:installment_id>")
@require_auth
def update_installment_route(installment_id: int):
    """
    Overwrite amount_cents, due_date, is_paid and/or note.

    Sibling installments are not rebalanced; the response carries the
    sale's reconciliation so the caller can see any drift.
    """
    payload = request.get_json(silent=True) or {}
    try:
        inst = installment_service.update_installment(installment_id, payload, user_id=g.current_user.id)
        return jsonify({
            "installment": installment_service.installment_view(inst, business_today()),
            "reconciliation": installment_service.reconcile_sale(inst.sale_id),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update installment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.post("/<int:installment_id>/toggle-paid")
@require_auth
def toggle_paid_route(installment_id: int):
    try:
        inst = installment_service.toggle_paid(installment_id, user_id=g.current_user.id)
        return jsonify(installment_service.installment_view(inst, business_today())), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to toggle installment")
        return jsonify({"error": "Internal server error"}), 500
