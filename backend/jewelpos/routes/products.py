# Overview: Flask API routes for products; inventory CRUD, QR code lookup, stock and images.

# backend/jewelpos/routes/products.py
"""
Product management routes.

Every product carries an 8-digit numeric code generated on creation; it is
what the printed QR label encodes and what the checkout scanner looks up.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..validation import ValidationError, NotFoundError, ConflictError, ReferentialError, TransientIOError
from ..decorators import require_auth

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: description or code fragment
    - category: exact category
    - in_stock: "1"/"true" to hide sold-out products
    """
    in_stock = (request.args.get("in_stock") or "").lower() in ("1", "true", "yes")
    products = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        in_stock=in_stock,
    )
    return {"items": [p.to_dict() for p in products]}


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    return {"items": products_service.list_categories()}


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.create_product(payload)
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransientIOError as e:
        return {"error": str(e)}, 503

    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return product.to_dict()


@products_bp.get("/code/<code>")
@require_auth
def get_product_by_code_route(code: str):
    """QR lookup used by the checkout scanner."""
    try:
        product = products_service.get_product_by_code(code)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return product.to_dict()


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.update_product(product_id, payload)
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransientIOError as e:
        return {"error": str(e)}, 503

    return product.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """409 when the product already appears on a sale."""
    try:
        products_service.delete_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ReferentialError as e:
        return {"error": str(e)}, 409
    except TransientIOError as e:
        return {"error": str(e)}, 503

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/stock")
@require_auth
def add_stock_route(product_id: int):
    """Request body: {"quantity": 3}"""
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.add_stock(product_id, payload.get("quantity"), user_id=g.current_user.id)
        return jsonify(product.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/origin")
@require_auth
def product_origin_route(product_id: int):
    """The payable (and supplier) that stocked this product; null when entered by hand."""
    try:
        return {"origin": products_service.get_product_origin(product_id)}
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.post("/<int:product_id>/image")
@require_auth
def upload_product_image_route(product_id: int):
    """multipart/form-data with an "image" file field."""
    file = request.files.get("image")
    if file is None or not file.filename:
        return jsonify({"error": "image file is required"}), 400

    try:
        product = products_service.attach_product_image(product_id, file, file.filename)
        return jsonify(product.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to store product image")
        return jsonify({"error": "Internal server error"}), 500
