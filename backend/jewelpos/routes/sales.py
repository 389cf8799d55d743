# Overview: Flask API routes for sales; checkout, the installment ledger, renegotiation and receipts.

# backend/jewelpos/routes/sales.py
"""
Sales API Routes

- POST /api/sales/quote      totals + planned installments, writes nothing
- POST /api/sales            finalize: sale, items, installments and stock in one transaction
- GET  /api/sales            every sale with installments and derived totals
- GET  /api/sales/<id>       one sale with its full ledger
- DELETE /api/sales/<id>     delete (optionally restocking the items)
- renegotiation: preview, create, history
- receipt: JSON and PDF
"""

import io

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..services import (
    audit_service,
    checkout_service,
    installment_service,
    receipt_service,
    renegotiation_service,
)
from ..validation import (
    ValidationError,
    NotFoundError,
    ConflictError,
    ReferentialError,
    TransientIOError,
)
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _checkout_args(data: dict) -> dict:
    return {
        "installment_count": data.get("installment_count", 1),
        "down_payment_cents": data.get("down_payment_cents", 0),
    }


# =============================================================================
# CHECKOUT
# =============================================================================

@sales_bp.post("/quote")
@require_auth
def quote_sale_route():
    """
    Preview a checkout.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2}],
        "payment_method": "INSTALLMENT",
        "installment_count": 3,
        "down_payment_cents": 6000
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        quote = checkout_service.quote_checkout(
            data.get("lines"),
            data.get("payment_method"),
            **_checkout_args(data),
        )
        return jsonify(quote), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to quote sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@require_auth
def finalize_sale_route():
    """
    Finalize a sale.

    Request body: same as /quote plus "client_id".

    Returns:
        201: the sale with its ledger
        400: invalid input, empty cart or insufficient stock (nothing written)
        404: client or product not found
        503: data store unavailable after retries (nothing written)
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = checkout_service.finalize_sale(
            data.get("client_id"),
            data.get("lines"),
            data.get("payment_method"),
            user_id=g.current_user.id,
            **_checkout_args(data),
        )
        return jsonify(installment_service.get_sale_ledger(sale.id)), 201
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ConflictError, ReferentialError) as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LEDGER QUERIES
# =============================================================================

@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - filter: ALL (default), INSTALLMENT or UPFRONT
    - client_id: only this client's sales
    """
    try:
        items = installment_service.list_sales_with_ledger(
            request.args.get("filter"),
            client_id=request.args.get("client_id", type=int),
        )
        return jsonify({"items": items}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify(installment_service.get_sale_ledger(sale_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.get("/<int:sale_id>/reconciliation")
@require_auth
def reconcile_sale_route(sale_id: int):
    """Active installment total vs sale total; drifts after manual amount edits."""
    try:
        return jsonify(installment_service.reconcile_sale(sale_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.get("/<int:sale_id>/events")
@require_auth
def sale_events_route(sale_id: int):
    events = audit_service.list_events(sale_id=sale_id)
    return jsonify({"items": [e.to_dict() for e in events]}), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    """Query params: restock=1 puts the sold quantities back into inventory."""
    restock = (request.args.get("restock") or "").lower() in ("1", "true", "yes")
    try:
        checkout_service.delete_sale(sale_id, restock=restock, user_id=g.current_user.id)
        return jsonify({"ok": True, "restocked": restock}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ConflictError, ReferentialError) as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RENEGOTIATION
# =============================================================================

@sales_bp.get("/<int:sale_id>/renegotiations")
@require_auth
def list_renegotiations_route(sale_id: int):
    try:
        return jsonify({"items": renegotiation_service.list_renegotiations(sale_id)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.post("/<int:sale_id>/renegotiations/preview")
@require_auth
def preview_renegotiation_route(sale_id: int):
    """Request body: {"down_payment_cents": 4000, "installment_count": 2}"""
    data = request.get_json(silent=True) or {}
    try:
        preview = renegotiation_service.preview_renegotiation(
            sale_id,
            data.get("down_payment_cents", 0),
            data.get("installment_count"),
        )
        return jsonify(preview), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.post("/<int:sale_id>/renegotiations")
@require_auth
def renegotiate_sale_route(sale_id: int):
    """
    Replace every unpaid installment of the sale with a new schedule.

    Returns:
        201: the renegotiation with cancelled and created installments
        400: no pending balance, or down payment exceeds it (nothing changed)
    """
    data = request.get_json(silent=True) or {}
    try:
        renegotiation = renegotiation_service.renegotiate_sale(
            sale_id,
            data.get("down_payment_cents", 0),
            data.get("installment_count"),
            user_id=g.current_user.id,
        )
        return jsonify(renegotiation_service.renegotiation_view(renegotiation)), 201
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to renegotiate sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RECEIPT
# =============================================================================

@sales_bp.get("/<int:sale_id>/receipt")
@require_auth
def receipt_route(sale_id: int):
    try:
        return jsonify(receipt_service.build_receipt(sale_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.get("/<int:sale_id>/receipt.pdf")
@require_auth
def receipt_pdf_route(sale_id: int):
    try:
        pdf, filename = receipt_service.render_receipt_pdf(sale_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to render receipt for sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500

    return send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename,
    )
