# Overview: Read-only reporting over sales, inventory and the installment ledger.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Client, PayableInstallment, Product, Sale, SaleInstallment, SaleItem
from ..validation import ValidationError, require_int
from jewelpos.time_utils import business_midnight_utc, business_today
from .concurrency import run_with_retry
from .installment_service import installment_view
from .schedule_service import add_months

MONTH_LABELS_PT = ("jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez")

RECENT_SALES_LIMIT = 5
LOW_STOCK_LIMIT = 5
REVENUE_MONTHS = 6


def _sales_total_between(start: date, end: date | None = None) -> int:
    q = db.session.query(func.coalesce(func.sum(Sale.total_cents), 0)).filter(
        Sale.sold_at >= business_midnight_utc(start)
    )
    if end is not None:
        q = q.filter(Sale.sold_at < business_midnight_utc(end))
    return int(q.scalar() or 0)


def _best_selling_product() -> dict | None:
    row = (
        db.session.query(
            SaleItem.product_id,
            func.sum(SaleItem.quantity).label("quantity_sold"),
            func.sum(SaleItem.quantity * SaleItem.unit_price_cents).label("revenue_cents"),
        )
        .group_by(SaleItem.product_id)
        .order_by(func.sum(SaleItem.quantity).desc(), SaleItem.product_id.asc())
        .first()
    )
    if not row:
        return None
    product = db.session.get(Product, row.product_id)
    return {
        "product_id": row.product_id,
        "description": product.description if product else None,
        "category": product.category if product else None,
        "quantity_sold": int(row.quantity_sold),
        "revenue_cents": int(row.revenue_cents),
    }


def get_dashboard_metrics(today: date | None = None) -> dict:
    today = today or business_today()
    month_start = today.replace(day=1)
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 3)

    def _collect():
        revenue = []
        for i in range(REVENUE_MONTHS - 1, -1, -1):
            start = add_months(month_start, -i)
            revenue.append({
                "month": start.strftime("%Y-%m"),
                "label": MONTH_LABELS_PT[start.month - 1],
                "total_cents": _sales_total_between(start, add_months(start, 1)),
            })

        receivable_pending = int(
            db.session.query(func.coalesce(func.sum(SaleInstallment.amount_cents), 0))
            .filter(SaleInstallment.is_paid.is_(False))
            .scalar() or 0
        )
        receivable_overdue = int(
            db.session.query(func.coalesce(func.sum(SaleInstallment.amount_cents), 0))
            .filter(SaleInstallment.is_paid.is_(False), SaleInstallment.due_date < today)
            .scalar() or 0
        )
        payables_pending = int(
            db.session.query(func.coalesce(func.sum(PayableInstallment.amount_cents), 0))
            .filter(PayableInstallment.is_paid.is_(False))
            .scalar() or 0
        )
        recent = (
            db.session.query(Sale)
            .order_by(Sale.sold_at.desc(), Sale.id.desc())
            .limit(RECENT_SALES_LIMIT)
            .all()
        )
        low_stock = (
            db.session.query(Product)
            .filter(Product.stock_quantity <= threshold)
            .order_by(Product.stock_quantity.asc(), Product.id.asc())
            .limit(LOW_STOCK_LIMIT)
            .all()
        )
        return {
            "today": today.isoformat(),
            "sales_today_cents": _sales_total_between(today),
            "sales_month_cents": _sales_total_between(month_start),
            "payables_pending_cents": payables_pending,
            "receivables_pending_cents": receivable_pending,
            "receivables_overdue_cents": receivable_overdue,
            "product_count": db.session.query(func.count(Product.id)).scalar(),
            "client_count": db.session.query(func.count(Client.id)).scalar(),
            "recent_sales": [s.to_dict() for s in recent],
            "low_stock_products": [p.to_dict() for p in low_stock],
            "monthly_revenue": revenue,
            "best_selling_product": _best_selling_product(),
        }

    return run_with_retry(_collect)


def get_due_calendar(year=None, month=None, *, today: date | None = None, include_cancelled: bool = False) -> dict:
    """
    Sale installments due in one month, chronological, with client name and status.

    available_months lists every month that has installments plus the current
    month. Rows cancelled by a renegotiation are left out unless asked for,
    since their replacement rows already carry the same debt.
    """
    today = today or business_today()
    year = require_int(year if year is not None else today.year, "year", minimum=1900)
    month = require_int(month if month is not None else today.month, "month", minimum=1)
    if month > 12:
        raise ValidationError("month must be between 1 and 12")

    start = date(year, month, 1)
    end = add_months(start, 1)

    q = (
        db.session.query(SaleInstallment, Client.name)
        .join(Sale, Sale.id == SaleInstallment.sale_id)
        .join(Client, Client.id == Sale.client_id)
        .filter(SaleInstallment.due_date >= start, SaleInstallment.due_date < end)
    )
    if not include_cancelled:
        q = q.filter(SaleInstallment.cancelled_by_renegotiation_id.is_(None))
    rows = q.order_by(SaleInstallment.due_date.asc(), SaleInstallment.id.asc()).all()

    entries = []
    total_due = total_paid = 0
    for inst, client_name in rows:
        view = installment_view(inst, today)
        view["client_name"] = client_name
        entries.append(view)
        total_due += inst.amount_cents
        if inst.is_paid:
            total_paid += inst.amount_cents

    months_q = db.session.query(SaleInstallment.due_date)
    if not include_cancelled:
        months_q = months_q.filter(SaleInstallment.cancelled_by_renegotiation_id.is_(None))
    months = {(d.year, d.month) for (d,) in months_q.distinct().all()}
    months.add((today.year, today.month))

    return {
        "year": year,
        "month": month,
        "installments": entries,
        "total_due_cents": total_due,
        "total_paid_cents": total_paid,
        "total_pending_cents": total_due - total_paid,
        "available_months": [f"{y:04d}-{m:02d}" for y, m in sorted(months)],
    }
