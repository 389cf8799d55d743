# Overview: Service-layer operations for sale installments; status derivation, summaries and manual edits.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Sale, SaleInstallment
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_amount_cents,
    validate_payload,
)
from jewelpos.time_utils import business_today, to_iso_date, utcnow
from .audit_service import record_event
from .concurrency import lock_for_update, run_in_transaction, run_with_retry
from .schedule_service import PAYMENT_INSTALLMENT

"""
Ledger read-model invariants

- Status and totals are derived on every read from the current rows; nothing
  is cached or stored.
- total_paid + total_pending == sum of every installment amount of the sale,
  because each row is either paid or not. Cancelled rows are paid.
- Rows cancelled by a renegotiation are frozen: editing or un-paying one
  would count the same debt twice.
- Manual edits never rebalance sibling rows. reconcile_sale reports the drift.
"""

STATUS_PAID = "PAID"
STATUS_OVERDUE = "OVERDUE"
STATUS_DUE_TODAY = "DUE_TODAY"
STATUS_UPCOMING = "UPCOMING"

SALE_FILTER_ALL = "ALL"
SALE_FILTER_INSTALLMENT = "INSTALLMENT"
SALE_FILTER_UPFRONT = "UPFRONT"
SALE_FILTERS = (SALE_FILTER_ALL, SALE_FILTER_INSTALLMENT, SALE_FILTER_UPFRONT)

INSTALLMENT_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "due_date", "is_paid", "note"},
)


def derive_status(installment, today: date) -> str:
    if installment.is_paid:
        return STATUS_PAID
    if installment.due_date < today:
        return STATUS_OVERDUE
    if installment.due_date == today:
        return STATUS_DUE_TODAY
    return STATUS_UPCOMING


@dataclass(frozen=True)
class InstallmentSummary:
    total_paid_cents: int
    total_pending_cents: int
    total_cancelled_cents: int
    overdue_cents: int
    overdue_count: int
    installment_count: int
    next_due_date: date | None

    @property
    def total_cents(self) -> int:
        return self.total_paid_cents + self.total_pending_cents

    def to_dict(self) -> dict:
        return {
            "total_paid_cents": self.total_paid_cents,
            "total_pending_cents": self.total_pending_cents,
            "total_cancelled_cents": self.total_cancelled_cents,
            "overdue_cents": self.overdue_cents,
            "overdue_count": self.overdue_count,
            "installment_count": self.installment_count,
            "next_due_date": to_iso_date(self.next_due_date),
        }


def summarize_installments(installments: Iterable, today: date) -> InstallmentSummary:
    paid = pending = cancelled = overdue = overdue_count = count = 0
    next_due: date | None = None
    for inst in installments:
        count += 1
        if inst.is_paid:
            paid += inst.amount_cents
            if getattr(inst, "cancelled_by_renegotiation_id", None) is not None:
                cancelled += inst.amount_cents
            continue
        pending += inst.amount_cents
        if inst.due_date < today:
            overdue += inst.amount_cents
            overdue_count += 1
        if next_due is None or inst.due_date < next_due:
            next_due = inst.due_date
    return InstallmentSummary(
        total_paid_cents=paid,
        total_pending_cents=pending,
        total_cancelled_cents=cancelled,
        overdue_cents=overdue,
        overdue_count=overdue_count,
        installment_count=count,
        next_due_date=next_due,
    )


def installment_view(installment: SaleInstallment, today: date) -> dict:
    data = installment.to_dict()
    data["status"] = derive_status(installment, today)
    return data


def _get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def reconcile_sale(sale_id: int) -> dict:
    """
    Compare the non-cancelled installment total with the sale total.

    Checkout and renegotiation keep these equal; a manual amount edit can
    break it and is reported here rather than silently rebalanced.
    """
    sale = _get_sale(sale_id)
    active_total = sum(i.amount_cents for i in sale.installments if not i.is_cancelled)
    difference = active_total - sale.total_cents
    return {
        "sale_id": sale.id,
        "total_cents": sale.total_cents,
        "active_total_cents": active_total,
        "difference_cents": difference,
        "is_balanced": difference == 0,
    }


def _warn_if_unbalanced(sale_id: int) -> None:
    report = reconcile_sale(sale_id)
    if not report["is_balanced"]:
        current_app.logger.warning(
            "Sale %s installments no longer reconcile with its total (difference %s cents)",
            sale_id, report["difference_cents"],
        )


def _load_installment_for_update(installment_id: int) -> SaleInstallment:
    inst = lock_for_update(
        db.session.query(SaleInstallment).filter(SaleInstallment.id == installment_id)
    ).first()
    if not inst:
        raise NotFoundError(f"Installment {installment_id} not found")
    if inst.is_cancelled:
        raise ValidationError(
            "Installment was cancelled by a renegotiation and cannot be changed",
            details={"cancelled_by_renegotiation_id": inst.cancelled_by_renegotiation_id},
        )
    return inst


def update_installment(installment_id: int, payload: dict, *, user_id: int | None = None) -> SaleInstallment:
    """
    Manual edit escape hatch: overwrite amount, due date, paid flag and/or note.

    is_paid=True sets paid_at to now when it was not set yet; is_paid=False
    clears it. Sibling rows are NOT rebalanced.
    """
    patch = validate_payload(
        model=SaleInstallment,
        payload=payload,
        policy=INSTALLMENT_EDIT_POLICY,
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
        if "is_paid" in patch:
            if inst.is_paid and inst.paid_at is None:
                inst.paid_at = utcnow()
            elif not inst.is_paid:
                inst.paid_at = None

        uow.step("audit")
        record_event(
            event_type="installment.updated",
            entity_type="sale_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            sale_id=inst.sale_id,
            payload={"before": before, "after": patch},
        )
        return inst

    inst = run_in_transaction("update_installment", _op)
    _warn_if_unbalanced(inst.sale_id)
    return inst


def toggle_paid(installment_id: int, *, user_id: int | None = None) -> SaleInstallment:
    """Flip the paid flag. paid_at always reflects the latest toggle to paid."""

    def _op(uow):
        uow.step("load installment")
        inst = _load_installment_for_update(installment_id)

        uow.step("toggle")
        inst.is_paid = not inst.is_paid
        inst.paid_at = utcnow() if inst.is_paid else None

        uow.step("audit")
        record_event(
            event_type="installment.toggled",
            entity_type="sale_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            sale_id=inst.sale_id,
            payload={"is_paid": inst.is_paid},
        )
        return inst

    return run_in_transaction("toggle_paid", _op)


def get_sale_ledger(sale_id: int, *, today: date | None = None) -> dict:
    """Sale header, items, installments with derived status, summary and reconciliation."""
    today = today or business_today()
    sale = _get_sale(sale_id)
    installments = list(sale.installments)
    data = sale.to_dict()
    data["items"] = [item.to_dict() for item in sale.items]
    data["installments"] = [installment_view(i, today) for i in installments]
    data["summary"] = summarize_installments(installments, today).to_dict()
    data["reconciliation"] = reconcile_sale(sale.id)
    data["renegotiations"] = [r.to_dict() for r in sale.renegotiations]
    return data


def _normalize_filter(value: str | None) -> str:
    f = (value or SALE_FILTER_ALL).strip().upper()
    if f not in SALE_FILTERS:
        raise ValidationError(f"filter must be one of {', '.join(SALE_FILTERS)}")
    return f


def list_sales_with_ledger(
    filter: str | None = SALE_FILTER_ALL,
    *,
    client_id: int | None = None,
    today: date | None = None,
) -> list[dict]:
    """
    Every sale with its installments and derived totals, newest first.

    filter: ALL, INSTALLMENT (crediário sales) or UPFRONT (everything else).
    """
    today = today or business_today()
    f = _normalize_filter(filter)

    def _query():
        q = db.session.query(Sale).options(
            selectinload(Sale.installments),
            selectinload(Sale.items),
            selectinload(Sale.client),
        )
        if f == SALE_FILTER_INSTALLMENT:
            q = q.filter(Sale.payment_method == PAYMENT_INSTALLMENT)
        elif f == SALE_FILTER_UPFRONT:
            q = q.filter(Sale.payment_method != PAYMENT_INSTALLMENT)
        if client_id is not None:
            q = q.filter(Sale.client_id == client_id)
        return q.order_by(Sale.sold_at.desc(), Sale.id.desc()).all()

    results = []
    for sale in run_with_retry(_query):
        installments = list(sale.installments)
        data = sale.to_dict()
        data["item_count"] = sum(item.quantity for item in sale.items)
        data["installments"] = [installment_view(i, today) for i in installments]
        data["summary"] = summarize_installments(installments, today).to_dict()
        results.append(data)
    return results
