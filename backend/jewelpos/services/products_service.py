# Overview: Service-layer operations for products; inventory CRUD, QR lookup, stock and catalog.

from __future__ import annotations

import secrets
from urllib.parse import quote

from flask import current_app

from ..extensions import db
from ..models import Product, SaleItem
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ReferentialError,
    ValidationError,
    enforce_rules_product,
    require_int,
    validate_payload,
)
from jewelpos.time_utils import utcnow
from .audit_service import record_event
from .concurrency import lock_for_update, run_in_transaction
from . import storage_service

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"description", "category", "sale_price_cents", "cost_cents", "stock_quantity", "image_url"},
    required_on_create={"description", "sale_price_cents"},
)

CODE_LENGTH = 8
_CODE_ATTEMPTS = 20


def generate_product_code() -> str:
    """
    Random 8-digit numeric code (the QR payload), unused by any product.

    Collisions are retried; the space is 90 million codes.
    """
    for _ in range(_CODE_ATTEMPTS):
        code = str(10_000_000 + secrets.randbelow(90_000_000))
        if not db.session.query(Product.id).filter_by(code=code).first():
            return code
    raise RuntimeError("Could not generate a unique product code")


def normalize_code(code) -> str:
    value = str(code or "").strip()
    if len(value) != CODE_LENGTH or not value.isdigit():
        raise ValidationError("Product code must be 8 digits")
    return value


def build_product(patch: dict, *, payable_id: int | None = None) -> Product:
    """Add a validated product to the session without committing (caller owns the transaction)."""
    enforce_rules_product(patch)
    product = Product(code=generate_product_code(), payable_id=payable_id, **patch)
    if product.stock_quantity is None:
        product.stock_quantity = 0
    db.session.add(product)
    db.session.flush()
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op(uow):
        uow.step("insert product")
        return build_product(patch)

    product = run_in_transaction("create_product", _op)
    current_app.logger.info("Product %s created with code %s", product.id, product.code)
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_by_code(code) -> Product:
    """QR lookup: the scanned or typed 8-digit code."""
    value = normalize_code(code)
    product = db.session.query(Product).filter_by(code=value).first()
    if not product:
        raise NotFoundError(f"No product with code {value}")
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op(uow):
        uow.step("load product")
        product = get_product(product_id)
        uow.step("apply update")
        for k, v in patch.items():
            setattr(product, k, v)
        return product

    return run_in_transaction("update_product", _op)


def delete_product(product_id: int) -> None:
    """Sold products keep the sales history intact and cannot be deleted."""

    def _op(uow):
        uow.step("load product")
        product = get_product(product_id)
        uow.step("check references")
        if db.session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first():
            raise ReferentialError(
                "Product already has sales and cannot be deleted; sold products stay for the sales history"
            )
        uow.step("delete product")
        db.session.delete(product)

    run_in_transaction("delete_product", _op)


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    in_stock: bool = False,
) -> list[Product]:
    q = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(Product.description.ilike(like), Product.code.like(like)))
    if category:
        q = q.filter(Product.category == category)
    if in_stock:
        q = q.filter(Product.stock_quantity > 0)
    return q.order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_categories(*, in_stock: bool = False) -> list[str]:
    q = db.session.query(Product.category).filter(Product.category.isnot(None))
    if in_stock:
        q = q.filter(Product.stock_quantity > 0)
    return sorted({row[0] for row in q.distinct().all() if row[0]})


def add_stock(product_id: int, quantity, *, user_id: int | None = None) -> Product:
    quantity = require_int(quantity, "quantity", minimum=1)

    def _op(uow):
        uow.step("lock product")
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        previous = product.stock_quantity

        uow.step("increment stock")
        product.stock_quantity = previous + quantity

        uow.step("audit")
        record_event(
            event_type="stock.added",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=user_id,
            payload={"previous": previous, "added": quantity, "new": product.stock_quantity},
        )
        return product

    return run_in_transaction("add_stock", _op)


def get_product_origin(product_id: int) -> dict | None:
    """Provenance: the payable (and its supplier) that stocked this product, if any."""
    product = get_product(product_id)
    payable = product.payable
    if not payable:
        return None
    data = payable.to_dict()
    data["supplier"] = payable.supplier.to_dict() if payable.supplier else None
    return data


def attach_product_image(product_id: int, file, filename: str) -> Product:
    product = get_product(product_id)
    ext = storage_service.image_extension(filename)
    stamp = utcnow().strftime("%Y%m%d%H%M%S%f")
    path = f"products/{product.code}_{stamp}.{ext}"
    url = storage_service.upload(path, file)

    def _op(uow):
        uow.step("set image url")
        p = get_product(product_id)
        p.image_url = url
        return p

    try:
        return run_in_transaction("attach_product_image", _op)
    except Exception:
        # the row never points at the file, so drop it
        storage_service.remove(path)
        raise


def whatsapp_inquiry_link(product: Product, number: str | None = None) -> str | None:
    number = "".join(ch for ch in (number or current_app.config.get("CATALOG_WHATSAPP_NUMBER") or "") if ch.isdigit())
    if not number:
        return None
    message = f"Olá! Gostaria de saber mais sobre: *{product.description}* (Cód: {product.code})"
    return f"https://wa.me/{number}?text={quote(message)}"


def list_catalog(*, category: str | None = None, search: str | None = None) -> dict:
    """Public catalog: in-stock products by description, their categories and inquiry links."""
    number = "".join(ch for ch in (current_app.config.get("CATALOG_WHATSAPP_NUMBER") or "") if ch.isdigit())
    products = list_products(search=search, category=category, in_stock=True)
    products.sort(key=lambda p: p.description.lower())
    items = []
    for p in products:
        items.append({
            "id": p.id,
            "code": p.code,
            "description": p.description,
            "category": p.category,
            "sale_price_cents": p.sale_price_cents,
            "image_url": p.image_url,
            "whatsapp_link": whatsapp_inquiry_link(p, number),
        })
    return {
        "business_name": current_app.config.get("BUSINESS_NAME"),
        "whatsapp_url": f"https://wa.me/{number}" if number else None,
        "categories": list_categories(in_stock=True),
        "products": items,
    }
