# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import supplier_service
from ..validation import ValidationError, NotFoundError, ReferentialError, TransientIOError
from ..decorators import require_auth


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(search=request.args.get("search"))
    return jsonify({"items": [s.to_dict() for s in suppliers]}), 200


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(payload)
        return jsonify(supplier.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    data = supplier.to_dict()
    data["payables"] = [p.to_dict() for p in supplier.payables]
    return jsonify(data), 200


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.update_supplier(supplier_id, payload)
        return jsonify(supplier.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ReferentialError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete supplier")
        return jsonify({"error": "Internal server error"}), 500
