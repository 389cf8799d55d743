# Overview: Service-layer operations for renegotiation; restructures a sale's pending balance atomically.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Renegotiation, Sale, SaleInstallment
from ..validation import NotFoundError
from jewelpos.time_utils import business_today, format_br_date, utcnow
from .audit_service import record_event
from .concurrency import lock_for_update, run_in_transaction
from .schedule_service import PlannedInstallment, plan_renegotiation_schedule


def cancellation_note(today: date) -> str:
    return f"Cancelada por renegociação em {format_br_date(today)}"


def _pending_rows(sale_id: int, *, for_update: bool) -> list[SaleInstallment]:
    q = db.session.query(SaleInstallment).filter(
        SaleInstallment.sale_id == sale_id,
        SaleInstallment.is_paid.is_(False),
    )
    if for_update:
        q = lock_for_update(q)
    return q.order_by(SaleInstallment.sequence.asc()).all()


def _next_sequence(sale_id: int) -> int:
    current_max = (
        db.session.query(func.max(SaleInstallment.sequence))
        .filter(SaleInstallment.sale_id == sale_id)
        .scalar()
    )
    return (current_max or 0) + 1


def _plan(sale_id: int, down_payment_cents, installment_count, today: date, *, for_update: bool):
    rows = _pending_rows(sale_id, for_update=for_update)
    pending = sum(r.amount_cents for r in rows)
    planned = plan_renegotiation_schedule(
        pending_cents=pending,
        down_payment_cents=down_payment_cents,
        installment_count=installment_count,
        next_sequence=_next_sequence(sale_id),
        today=today,
    )
    return rows, pending, planned


def preview_renegotiation(
    sale_id: int,
    down_payment_cents: int,
    installment_count: int,
    *,
    today: date | None = None,
) -> dict:
    """Dry run: what renegotiate_sale would cancel and create. Writes nothing."""
    today = today or business_today()
    if not db.session.get(Sale, sale_id):
        raise NotFoundError(f"Sale {sale_id} not found")
    rows, pending, planned = _plan(sale_id, down_payment_cents, installment_count, today, for_update=False)
    return {
        "sale_id": sale_id,
        "pending_cents": pending,
        "cancelled_installment_ids": [r.id for r in rows],
        "planned": [p.to_dict() for p in planned],
        "new_pending_cents": sum(p.amount_cents for p in planned if not p.is_paid),
    }


def _to_row(sale_id: int, planned: PlannedInstallment, renegotiation: Renegotiation, now) -> SaleInstallment:
    return SaleInstallment(
        sale_id=sale_id,
        sequence=planned.sequence,
        kind=planned.kind,
        amount_cents=planned.amount_cents,
        due_date=planned.due_date,
        is_paid=planned.is_paid,
        paid_at=now if planned.is_paid else None,
        note=planned.note,
        renegotiation=renegotiation,
    )


def renegotiate_sale(
    sale_id: int,
    down_payment_cents: int,
    installment_count: int,
    *,
    today: date | None = None,
    user_id: int | None = None,
) -> Renegotiation:
    """
    Replace a sale's unpaid installments with a new schedule for the same balance.

    One transaction:
      1. every currently unpaid row is marked paid, stamped with the
         cancellation note and linked to the Renegotiation record
      2. optional down payment row (paid today)
      3. M monthly rows for P - D', sequences continuing above the sale's max

    D' > P is rejected before any row changes. Rows paid or cancelled by an
    earlier renegotiation are never touched.
    """
    today = today or business_today()

    def _op(uow):
        uow.step("load sale")
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found")

        uow.step("plan schedule")
        rows, pending, planned = _plan(sale_id, down_payment_cents, installment_count, today, for_update=True)
        now = utcnow()

        uow.step("record renegotiation")
        renegotiation = Renegotiation(
            sale_id=sale.id,
            pending_before_cents=pending,
            down_payment_cents=sum(p.amount_cents for p in planned if p.is_paid),
            installment_count=sum(1 for p in planned if not p.is_paid),
            created_by_user_id=user_id,
        )
        db.session.add(renegotiation)
        db.session.flush()

        uow.step("cancel unpaid installments")
        note = cancellation_note(today)
        for row in rows:
            row.is_paid = True
            row.paid_at = now
            row.note = note
            row.cancelled_by_renegotiation_id = renegotiation.id

        uow.step("insert new schedule")
        new_rows = [_to_row(sale.id, p, renegotiation, now) for p in planned]
        db.session.add_all(new_rows)
        db.session.flush()

        uow.step("audit")
        record_event(
            event_type="sale.renegotiated",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=user_id,
            sale_id=sale.id,
            note=note,
            payload={
                "renegotiation_id": renegotiation.id,
                "pending_before_cents": pending,
                "down_payment_cents": renegotiation.down_payment_cents,
                "installment_count": renegotiation.installment_count,
                "cancelled_installment_ids": [r.id for r in rows],
                "created_installment_ids": [r.id for r in new_rows],
            },
        )
        return renegotiation

    renegotiation = run_in_transaction("renegotiate_sale", _op)
    current_app.logger.info(
        "Renegotiated sale %s (renegotiation %s, pending %s cents)",
        sale_id, renegotiation.id, renegotiation.pending_before_cents,
    )
    return renegotiation


def renegotiation_view(renegotiation: Renegotiation) -> dict:
    data = renegotiation.to_dict()
    data["cancelled_installment_ids"] = [
        i.id for i in db.session.query(SaleInstallment.id)
        .filter(SaleInstallment.cancelled_by_renegotiation_id == renegotiation.id)
        .order_by(SaleInstallment.sequence)
    ]
    data["created_installments"] = [
        i.to_dict() for i in db.session.query(SaleInstallment)
        .filter(SaleInstallment.renegotiation_id == renegotiation.id)
        .order_by(SaleInstallment.sequence)
    ]
    return data


def list_renegotiations(sale_id: int) -> list[dict]:
    if not db.session.get(Sale, sale_id):
        raise NotFoundError(f"Sale {sale_id} not found")
    renegotiations = (
        db.session.query(Renegotiation)
        .filter(Renegotiation.sale_id == sale_id)
        .order_by(Renegotiation.id.asc())
        .all()
    )
    return [renegotiation_view(r) for r in renegotiations]
