# Overview: Service-layer operations for checkout; cart, quote and the atomic sale finalization.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Client, Product, Renegotiation, Sale, SaleInstallment, SaleItem
from ..validation import NotFoundError, ValidationError, require_int
from jewelpos.time_utils import business_today, utcnow
from .audit_service import record_event
from .concurrency import lock_for_update, run_in_transaction, run_with_retry
from .products_service import get_product_by_code
from .schedule_service import normalize_payment_method, plan_sale_schedule


class CheckoutError(ValidationError):
    """Checkout-specific validation failure (empty cart, insufficient stock)."""


@dataclass
class CartLine:
    product_id: int
    code: str
    description: str
    unit_price_cents: int
    quantity: int
    available_stock: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "code": self.code,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "available_stock": self.available_stock,
            "line_total_cents": self.line_total_cents,
        }


class Cart:
    """
    In-memory cart built at the counter.

    Stock is checked against what the product had when it was added; the
    authoritative check happens again, under row locks, in finalize_sale.
    """

    def __init__(self):
        self._lines: dict[int, CartLine] = {}

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def add_product(self, product: Product, quantity: int = 1) -> CartLine:
        quantity = require_int(quantity, "quantity", minimum=1)
        line = self._lines.get(product.id)
        new_quantity = quantity + (line.quantity if line else 0)
        if new_quantity > product.stock_quantity:
            raise CheckoutError(
                f"Insufficient stock for {product.description}",
                details={"product_id": product.id, "requested": new_quantity, "available": product.stock_quantity},
            )
        if line:
            line.quantity = new_quantity
            return line
        line = CartLine(
            product_id=product.id,
            code=product.code,
            description=product.description,
            unit_price_cents=product.sale_price_cents,
            quantity=quantity,
            available_stock=product.stock_quantity,
        )
        self._lines[product.id] = line
        return line

    def add_by_code(self, code: str, quantity: int = 1) -> CartLine:
        """QR scan / typed code."""
        return self.add_product(get_product_by_code(code), quantity)

    def set_quantity(self, product_id: int, quantity: int) -> None:
        quantity = require_int(quantity, "quantity", minimum=0)
        line = self._lines.get(product_id)
        if not line:
            raise NotFoundError(f"Product {product_id} is not in the cart")
        if quantity == 0:
            del self._lines[product_id]
            return
        if quantity > line.available_stock:
            raise CheckoutError(
                f"Insufficient stock for {line.description}",
                details={"product_id": product_id, "requested": quantity, "available": line.available_stock},
            )
        line.quantity = quantity

    def remove(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def to_lines(self) -> list[dict]:
        return [{"product_id": l.product_id, "quantity": l.quantity} for l in self._lines.values()]

    def to_dict(self) -> dict:
        return {"lines": [l.to_dict() for l in self._lines.values()], "total_cents": self.total_cents}


def _normalize_lines(lines) -> dict[int, int]:
    """[{"product_id", "quantity"}] -> {product_id: quantity}, merging duplicates."""
    if not isinstance(lines, list) or not lines:
        raise CheckoutError("Cart is empty")
    merged: dict[int, int] = {}
    for idx, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{idx}] must be an object")
        product_id = require_int(raw.get("product_id"), f"lines[{idx}].product_id", minimum=1)
        quantity = require_int(raw.get("quantity", 1), f"lines[{idx}].quantity", minimum=1)
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def _load_products(quantities: dict[int, int], *, for_update: bool) -> dict[int, Product]:
    q = db.session.query(Product).filter(Product.id.in_(quantities.keys()))
    if for_update:
        q = lock_for_update(q)
    products = {p.id: p for p in q.all()}
    missing = sorted(set(quantities) - set(products))
    if missing:
        raise NotFoundError(f"Products not found: {', '.join(str(m) for m in missing)}")
    return products


def _check_stock(quantities: dict[int, int], products: dict[int, Product]) -> None:
    short = [
        {"product_id": pid, "description": products[pid].description,
         "requested": qty, "available": products[pid].stock_quantity}
        for pid, qty in quantities.items()
        if qty > products[pid].stock_quantity
    ]
    if short:
        raise CheckoutError("Insufficient stock", details={"lines": short})


def quote_checkout(
    lines,
    payment_method: str,
    *,
    installment_count: int = 1,
    down_payment_cents: int = 0,
    today: date | None = None,
) -> dict:
    """Totals and the installment schedule finalize_sale would create. Writes nothing."""
    today = today or business_today()
    quantities = _normalize_lines(lines)
    products = run_with_retry(lambda: _load_products(quantities, for_update=False))
    _check_stock(quantities, products)

    items = [
        {
            "product_id": pid,
            "code": products[pid].code,
            "description": products[pid].description,
            "quantity": qty,
            "unit_price_cents": products[pid].sale_price_cents,
            "line_total_cents": qty * products[pid].sale_price_cents,
        }
        for pid, qty in quantities.items()
    ]
    total = sum(i["line_total_cents"] for i in items)
    planned = plan_sale_schedule(
        total_cents=total,
        payment_method=payment_method,
        today=today,
        installment_count=installment_count,
        down_payment_cents=down_payment_cents,
    )
    return {
        "items": items,
        "total_cents": total,
        "payment_method": normalize_payment_method(payment_method),
        "installments": [p.to_dict() for p in planned],
    }


def finalize_sale(
    client_id: int,
    lines,
    payment_method: str,
    *,
    installment_count: int = 1,
    down_payment_cents: int = 0,
    today: date | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Create the sale, its items, its installment schedule and the stock
    decrement as ONE transaction.

    Stock is re-checked under row locks; if any line exceeds what is on hand
    the whole sale is rejected and nothing is written. Any failure rolls
    everything back and the log names the step that failed.
    """
    today = today or business_today()
    client_id = require_int(client_id, "client_id", minimum=1)
    quantities = _normalize_lines(lines)
    method = normalize_payment_method(payment_method)

    def _op(uow):
        uow.step("load client")
        if not db.session.get(Client, client_id):
            raise NotFoundError(f"Client {client_id} not found")

        uow.step("lock products")
        products = _load_products(quantities, for_update=True)
        _check_stock(quantities, products)

        uow.step("plan schedule")
        total = sum(qty * products[pid].sale_price_cents for pid, qty in quantities.items())
        planned = plan_sale_schedule(
            total_cents=total,
            payment_method=method,
            today=today,
            installment_count=installment_count,
            down_payment_cents=down_payment_cents,
        )
        now = utcnow()

        uow.step("insert sale")
        sale = Sale(
            client_id=client_id,
            sold_at=now,
            total_cents=total,
            payment_method=method,
            created_by_user_id=user_id,
        )
        db.session.add(sale)
        db.session.flush()

        uow.step("insert items")
        for pid, qty in quantities.items():
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=pid,
                quantity=qty,
                unit_price_cents=products[pid].sale_price_cents,
            ))
        db.session.flush()

        uow.step("insert installments")
        for p in planned:
            db.session.add(SaleInstallment(
                sale_id=sale.id,
                sequence=p.sequence,
                kind=p.kind,
                amount_cents=p.amount_cents,
                due_date=p.due_date,
                is_paid=p.is_paid,
                paid_at=now if p.is_paid else None,
                note=p.note,
            ))
        db.session.flush()

        uow.step("decrement stock")
        for pid, qty in quantities.items():
            products[pid].stock_quantity -= qty
        db.session.flush()

        uow.step("audit")
        record_event(
            event_type="sale.created",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=user_id,
            sale_id=sale.id,
            payload={
                "total_cents": total,
                "payment_method": method,
                "lines": [{"product_id": pid, "quantity": qty} for pid, qty in quantities.items()],
                "installments": len(planned),
            },
        )
        return sale

    sale = run_in_transaction("finalize_sale", _op)
    current_app.logger.info(
        "Sale %s finalized: client=%s total_cents=%s method=%s",
        sale.id, sale.client_id, sale.total_cents, sale.payment_method,
    )
    return sale


def delete_sale(sale_id: int, *, restock: bool = False, user_id: int | None = None) -> None:
    """
    Delete a sale with its items, installments and renegotiation records.

    restock=True puts the sold quantities back into inventory (sale voided);
    the default leaves stock untouched, as the goods already left the store.
    """

    def _op(uow):
        uow.step("load sale")
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found")
        items = db.session.query(SaleItem).filter(SaleItem.sale_id == sale_id).all()
        snapshot = {
            "client_id": sale.client_id,
            "total_cents": sale.total_cents,
            "payment_method": sale.payment_method,
            "restock": restock,
            "lines": [{"product_id": i.product_id, "quantity": i.quantity} for i in items],
        }

        if restock:
            uow.step("restock products")
            for item in items:
                product = lock_for_update(
                    db.session.query(Product).filter(Product.id == item.product_id)
                ).first()
                if product:
                    product.stock_quantity += item.quantity

        uow.step("delete installments")
        for inst in db.session.query(SaleInstallment).filter(SaleInstallment.sale_id == sale_id).all():
            db.session.delete(inst)
        db.session.flush()

        uow.step("delete renegotiations")
        for reneg in db.session.query(Renegotiation).filter(Renegotiation.sale_id == sale_id).all():
            db.session.delete(reneg)
        db.session.flush()

        uow.step("delete items")
        for item in items:
            db.session.delete(item)
        db.session.flush()

        uow.step("delete sale")
        db.session.delete(sale)
        db.session.flush()

        uow.step("audit")
        record_event(
            event_type="sale.deleted",
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
            sale_id=sale_id,
            payload=snapshot,
        )

    run_in_transaction("delete_sale", _op)
    current_app.logger.info("Sale %s deleted (restock=%s)", sale_id, restock)
