# Overview: Flask API routes for payables; supplier invoices, their installments and stocked products.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payable_service
from ..validation import ValidationError, NotFoundError, ConflictError, ReferentialError, TransientIOError
from ..decorators import require_auth
from jewelpos.time_utils import business_today


payables_bp = Blueprint("payables", __name__, url_prefix="/api/payables")


@payables_bp.get("")
@require_auth
def list_payables_route():
    """Query params: status = PENDING | PAID (omit for all)."""
    try:
        items = payable_service.list_payables(status=request.args.get("status") or None)
        return jsonify({"items": items}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@payables_bp.post("")
@require_auth
def create_payable_route():
    """
    Request body:
    {
        "supplier_name": "Atacado Prata" | "supplier_id": 3,
        "description": "Lote de brincos",
        "installment_count": 3,
        "invoice_number": "NF-123",
        "payment_method": "BANK_SLIP",
        "products": [{"description": "Brinco", "category": "Brincos", "quantity": 10, "cost_cents": 1500}]
    }
    total_cents is optional when products are given.
    """
    data = request.get_json(silent=True) or {}
    try:
        payable = payable_service.create_payable(data, user_id=g.current_user.id)
        return jsonify(payable_service.get_payable(payable.id)), 201
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ConflictError, ReferentialError) as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create payable")
        return jsonify({"error": "Internal server error"}), 500


@payables_bp.get("/<int:payable_id>")
@require_auth
def get_payable_route(payable_id: int):
    try:
        return jsonify(payable_service.get_payable(payable_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@payables_bp.delete("/<int:payable_id>")
@require_auth
def delete_payable_route(payable_id: int):
    try:
        payable_service.delete_payable(payable_id, user_id=g.current_user.id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ReferentialError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete payable")
        return jsonify({"error": "Internal server error"}), 500


@payables_bp.post("/installments/<int:installment_id>/toggle-paid")
@require_auth
def toggle_payable_installment_route(installment_id: int):
    try:
        inst = payable_service.toggle_payable_installment_paid(installment_id, user_id=g.current_user.id)
        return jsonify(inst.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to toggle payable installment")
        return jsonify({"error": "Internal server error"}), 500


@payables_bp.patch("/installments/<int:installment_id>")
@require_auth
def update_payable_installment_route(installment_id: int):
    """Request body: amount_cents and/or due_date (YYYY-MM-DD)."""
    payload = request.get_json(silent=True) or {}
    try:
        inst = payable_service.update_payable_installment(installment_id, payload, user_id=g.current_user.id)
        data = inst.to_dict()
        data["status"] = payable_service.derive_status(inst, business_today())
        return jsonify(data), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update payable installment")
        return jsonify({"error": "Internal server error"}), 500
