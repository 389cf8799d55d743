# Overview: Service-layer operations for payables; supplier invoices, their installments and stocked products.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Payable, PayableInstallment, Product
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_amount_cents,
    require_int,
    validate_payload,
)
from jewelpos.time_utils import business_today, utcnow
from .audit_service import record_event
from .concurrency import lock_for_update, run_in_transaction
from .installment_service import derive_status, summarize_installments
from .products_service import build_product
from .schedule_service import plan_payable_schedule
from .supplier_service import find_or_create_supplier_by_name, get_supplier

"""
Payable invariants

- Mirrors the receivable side without down payments or renegotiation.
- Installments are monthly, starting one month after creation; the rounding
  remainder goes on the last one.
- Supplier resolution, payable, installments and stocked products are written
  in ONE transaction.
- Products stocked by a payable carry payable_id for provenance and a
  suggested sale price of 2x their unit cost.
"""

PAYABLE_PAYMENT_METHODS = ("CASH", "PIX", "BANK_SLIP", "CREDIT_CARD", "DEBIT_CARD", "TRANSFER")

SUGGESTED_MARKUP = 2

PAYABLE_INSTALLMENT_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "due_date"},
)

PAYABLE_STATUS_PENDING = "PENDING"
PAYABLE_STATUS_PAID = "PAID"


def _clean_product_lines(raw_lines) -> list[dict]:
    if raw_lines is None:
        return []
    if not isinstance(raw_lines, list):
        raise ValidationError("products must be a list")
    lines = []
    for idx, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"products[{idx}] must be an object")
        description = str(raw.get("description") or "").strip()
        if not description:
            raise ValidationError(f"products[{idx}].description is required")
        quantity = require_int(raw.get("quantity", 1), f"products[{idx}].quantity", minimum=1)
        cost = require_int(raw.get("cost_cents", 0), f"products[{idx}].cost_cents", minimum=0)
        enforce_amount_cents(cost, f"products[{idx}].cost_cents")
        category = str(raw.get("category") or "").strip() or None
        lines.append({"description": description, "category": category, "quantity": quantity, "cost_cents": cost})
    return lines


def _clean_payment_method(value) -> str | None:
    if value in (None, ""):
        return None
    method = str(value).strip().upper()
    if method not in PAYABLE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYABLE_PAYMENT_METHODS)}")
    return method


def create_payable(payload: dict, *, today: date | None = None, user_id: int | None = None) -> Payable:
    """
    Register a supplier invoice.

    payload:
      supplier_id | supplier_name (+ supplier_tax_id, supplier_phone, supplier_address)
      description, installment_count (default 1), invoice_number, payment_method
      total_cents: optional when products are given (defaults to sum of quantity x cost)
      products: [{description, category, quantity, cost_cents}]
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    today = today or business_today()

    description = str(payload.get("description") or "").strip()
    if not description:
        raise ValidationError("description is required")
    if len(description) > 255:
        raise ValidationError("description exceeds max length 255")

    supplier_id = payload.get("supplier_id")
    supplier_name = payload.get("supplier_name")
    if supplier_id is None and not (supplier_name or "").strip():
        raise ValidationError("supplier_id or supplier_name is required")
    if supplier_id is not None:
        supplier_id = require_int(supplier_id, "supplier_id", minimum=1)

    lines = _clean_product_lines(payload.get("products"))
    if payload.get("total_cents") is not None:
        total = require_int(payload["total_cents"], "total_cents")
    elif lines:
        total = sum(l["quantity"] * l["cost_cents"] for l in lines)
    else:
        raise ValidationError("total_cents is required when no products are given")

    count = require_int(payload.get("installment_count", 1), "installment_count", minimum=1)
    planned = plan_payable_schedule(total_cents=total, installment_count=count, today=today)
    payment_method = _clean_payment_method(payload.get("payment_method"))
    invoice_number = str(payload.get("invoice_number") or "").strip() or None

    def _op(uow):
        uow.step("resolve supplier")
        if supplier_id is not None:
            supplier = get_supplier(supplier_id)
        else:
            supplier = find_or_create_supplier_by_name(
                supplier_name,
                tax_id=payload.get("supplier_tax_id"),
                phone=payload.get("supplier_phone"),
                address=payload.get("supplier_address"),
            )

        uow.step("insert payable")
        payable = Payable(
            supplier_id=supplier.id,
            description=description,
            total_cents=total,
            installment_count=count,
            invoice_number=invoice_number,
            payment_method=payment_method,
            created_by_user_id=user_id,
        )
        db.session.add(payable)
        db.session.flush()

        uow.step("insert installments")
        for p in planned:
            db.session.add(PayableInstallment(
                payable_id=payable.id,
                sequence=p.sequence,
                amount_cents=p.amount_cents,
                due_date=p.due_date,
                is_paid=False,
            ))
        db.session.flush()

        uow.step("insert products")
        product_ids = []
        for line in lines:
            product = build_product(
                {
                    "description": line["description"],
                    "category": line["category"],
                    "cost_cents": line["cost_cents"],
                    "sale_price_cents": line["cost_cents"] * SUGGESTED_MARKUP,
                    "stock_quantity": line["quantity"],
                },
                payable_id=payable.id,
            )
            product_ids.append(product.id)

        uow.step("audit")
        record_event(
            event_type="payable.created",
            entity_type="payable",
            entity_id=payable.id,
            actor_user_id=user_id,
            payable_id=payable.id,
            payload={
                "supplier_id": supplier.id,
                "total_cents": total,
                "installment_count": count,
                "product_ids": product_ids,
            },
        )
        return payable

    payable = run_in_transaction("create_payable", _op)
    current_app.logger.info(
        "Payable %s created: supplier=%s total_cents=%s installments=%s",
        payable.id, payable.supplier_id, payable.total_cents, payable.installment_count,
    )
    return payable


def _get_payable(payable_id: int) -> Payable:
    payable = db.session.get(Payable, payable_id)
    if not payable:
        raise NotFoundError(f"Payable {payable_id} not found")
    return payable


def payable_view(payable: Payable, today: date, *, include_products: bool = False) -> dict:
    installments = list(payable.installments)
    data = payable.to_dict()
    data["installments"] = [
        {**i.to_dict(), "status": derive_status(i, today)} for i in installments
    ]
    data["summary"] = summarize_installments(installments, today).to_dict()
    if include_products:
        data["supplier"] = payable.supplier.to_dict() if payable.supplier else None
        data["products"] = [p.to_dict() for p in payable.products]
    return data


def get_payable(payable_id: int, *, today: date | None = None) -> dict:
    return payable_view(_get_payable(payable_id), today or business_today(), include_products=True)


def list_payables(*, status: str | None = None, today: date | None = None) -> list[dict]:
    """status: None (all), PENDING (any unpaid installment) or PAID (fully paid)."""
    today = today or business_today()
    if status is not None:
        status = status.strip().upper()
        if status not in (PAYABLE_STATUS_PENDING, PAYABLE_STATUS_PAID):
            raise ValidationError("status must be PENDING or PAID")

    payables = db.session.query(Payable).order_by(Payable.created_at.desc(), Payable.id.desc()).all()
    results = []
    for payable in payables:
        view = payable_view(payable, today)
        pending = view["summary"]["total_pending_cents"] > 0
        if status == PAYABLE_STATUS_PENDING and not pending:
            continue
        if status == PAYABLE_STATUS_PAID and pending:
            continue
        results.append(view)
    return results


def _load_installment_for_update(installment_id: int) -> PayableInstallment:
    inst = lock_for_update(
        db.session.query(PayableInstallment).filter(PayableInstallment.id == installment_id)
    ).first()
    if not inst:
        raise NotFoundError(f"Payable installment {installment_id} not found")
    return inst


def toggle_payable_installment_paid(installment_id: int, *, user_id: int | None = None) -> PayableInstallment:
    def _op(uow):
        uow.step("load installment")
        inst = _load_installment_for_update(installment_id)
        uow.step("toggle")
        inst.is_paid = not inst.is_paid
        inst.paid_at = utcnow() if inst.is_paid else None
        uow.step("audit")
        record_event(
            event_type="payable_installment.toggled",
            entity_type="payable_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            payable_id=inst.payable_id,
            payload={"is_paid": inst.is_paid},
        )
        return inst

    return run_in_transaction("toggle_payable_installment_paid", _op)


def update_payable_installment(installment_id: int, payload: dict, *, user_id: int | None = None) -> PayableInstallment:
    """Overwrite amount and/or due date. Siblings are not rebalanced."""
    patch = validate_payload(
        model=PayableInstallment,
        payload=payload,
        policy=PAYABLE_INSTALLMENT_POLICY,
        partial=True,
    )
    if not patch:
        raise ValidationError("Nothing to update")
    if "amount_cents" in patch:
        enforce_amount_cents(patch["amount_cents"], "amount_cents", allow_zero=False)

    def _op(uow):
        uow.step("load installment")
        inst = _load_installment_for_update(installment_id)
        before = {k: getattr(inst, k) for k in patch}
        uow.step("apply edit")
        for k, v in patch.items():
            setattr(inst, k, v)
        uow.step("audit")
        record_event(
            event_type="payable_installment.updated",
            entity_type="payable_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            payable_id=inst.payable_id,
            payload={"before": before, "after": patch},
        )
        return inst

    return run_in_transaction("update_payable_installment", _op)


def delete_payable(payable_id: int, *, user_id: int | None = None) -> None:
    """Delete a payable and its installments. Stocked products stay; their provenance link is cleared."""

    def _op(uow):
        uow.step("load payable")
        payable = _get_payable(payable_id)
        snapshot = {"supplier_id": payable.supplier_id, "total_cents": payable.total_cents}

        uow.step("clear product provenance")
        cleared = 0
        for product in db.session.query(Product).filter(Product.payable_id == payable_id).all():
            product.payable_id = None
            cleared += 1
        db.session.flush()

        uow.step("delete installments")
        for inst in db.session.query(PayableInstallment).filter(PayableInstallment.payable_id == payable_id).all():
            db.session.delete(inst)
        db.session.flush()

        uow.step("delete payable")
        db.session.delete(payable)
        db.session.flush()

        uow.step("audit")
        record_event(
            event_type="payable.deleted",
            entity_type="payable",
            entity_id=payable_id,
            actor_user_id=user_id,
            payable_id=payable_id,
            payload={**snapshot, "products_unlinked": cleared},
        )

    run_in_transaction("delete_payable", _op)
