# Overview: Flask API routes for clients; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import client_service
from ..validation import ValidationError, NotFoundError, ConflictError, ReferentialError, TransientIOError
from ..decorators import require_auth


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
def list_clients_route():
    """Query params: search (name, phone or CPF digits)."""
    clients = client_service.list_clients(search=request.args.get("search"))
    return jsonify({"items": [c.to_dict() for c in clients]}), 200


@clients_bp.post("")
@require_auth
def create_client_route():
    """
    Request body: {"name": "...", "tax_id": "123.456.789-00", "phone": "...", "address": "..."}

    Returns:
        201: client created
        400: invalid input
        409: CPF already registered
    """
    payload = request.get_json(silent=True) or {}
    try:
        client = client_service.create_client(payload)
        return jsonify(client.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    try:
        return jsonify(client_service.get_client(client_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@clients_bp.put("/<int:client_id>")
@require_auth
def update_client_route(client_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        client = client_service.update_client(client_id, payload)
        return jsonify(client.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/<int:client_id>")
@require_auth
def delete_client_route(client_id: int):
    """409 when the client has sales."""
    try:
        client_service.delete_client(client_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ReferentialError as e:
        return jsonify({"error": str(e)}), 409
    except TransientIOError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return jsonify({"error": "Internal server error"}), 500
