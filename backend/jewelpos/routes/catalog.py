# Overview: Public product catalog; no authentication.

from flask import Blueprint, request

from ..services import products_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("")
def catalog_route():
    """
    In-stock products with a WhatsApp inquiry link each.

    Query params: category, search
    """
    return products_service.list_catalog(
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
    )
