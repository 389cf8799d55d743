# Overview: Pure schedule planners for sale, renegotiation and payable installments.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from dateutil.relativedelta import relativedelta

from ..validation import ValidationError, enforce_amount_cents, require_int
from jewelpos.time_utils import format_br_date

"""
Schedule invariants (authoritative)

- Money is integer cents. An equal split puts the rounding remainder on the
  LAST installment, so planned amounts always sum to exactly the balance.
- Monthly steps are calendar months (Jan 31 + 1 month -> Feb 28/29), never
  fixed 30-day offsets.
- Planners are pure: they read nothing and write nothing. Persistence lives in
  checkout_service / renegotiation_service / payable_service.
- No zero-value installment is ever planned.
"""

PAYMENT_PIX = "PIX"
PAYMENT_CREDIT_CARD = "CREDIT_CARD"
PAYMENT_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_CASH = "CASH"
PAYMENT_INSTALLMENT = "INSTALLMENT"

PAYMENT_METHODS = (
    PAYMENT_PIX,
    PAYMENT_CREDIT_CARD,
    PAYMENT_DEBIT_CARD,
    PAYMENT_CASH,
    PAYMENT_INSTALLMENT,
)

# Shown to the store and printed in notes/receipts
PAYMENT_METHOD_LABELS = {
    PAYMENT_PIX: "PIX",
    PAYMENT_CREDIT_CARD: "Crédito",
    PAYMENT_DEBIT_CARD: "Débito",
    PAYMENT_CASH: "Dinheiro",
    PAYMENT_INSTALLMENT: "Crediário",
}

KIND_REGULAR = "REGULAR"
KIND_DOWN_PAYMENT = "DOWN_PAYMENT"
KIND_RENEGOTIATED_DOWN_PAYMENT = "RENEGOTIATED_DOWN_PAYMENT"
KIND_RENEGOTIATED = "RENEGOTIATED"

INSTALLMENT_KINDS = (
    KIND_REGULAR,
    KIND_DOWN_PAYMENT,
    KIND_RENEGOTIATED_DOWN_PAYMENT,
    KIND_RENEGOTIATED,
)

NOTE_DOWN_PAYMENT = "Entrada"
NOTE_RENEGOTIATION_DOWN_PAYMENT = "Entrada de renegociação"

MAX_INSTALLMENTS = 48


@dataclass(frozen=True)
class PlannedInstallment:
    sequence: int
    kind: str
    amount_cents: int
    due_date: date
    is_paid: bool
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "due_date": self.due_date.isoformat(),
            "is_paid": self.is_paid,
            "note": self.note,
        }


def split_amount(total_cents: int, count: int) -> list[int]:
    """
    Equal split of total_cents into count parts; remainder on the last part.

    split_amount(10000, 3) -> [3333, 3333, 3334]
    """
    if count < 1:
        raise ValidationError("installment_count must be >= 1")
    if total_cents < 0:
        raise ValidationError("amount must be >= 0")
    base = total_cents // count
    parts = [base] * count
    parts[-1] += total_cents - base * count
    return parts


def add_months(start: date, months: int) -> date:
    """Calendar-month step, clamped to the end of shorter months."""
    return start + relativedelta(months=months)


def normalize_payment_method(value) -> str:
    method = str(value or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": value},
        )
    return method


def is_installment_method(method: str) -> bool:
    return method == PAYMENT_INSTALLMENT


def _check_count(count) -> int:
    count = require_int(count, "installment_count", minimum=1)
    if count > MAX_INSTALLMENTS:
        raise ValidationError(f"installment_count cannot exceed {MAX_INSTALLMENTS}")
    return count


def _check_splittable(balance_cents: int, count: int) -> None:
    if 0 < balance_cents < count:
        raise ValidationError(
            f"Balance of {balance_cents} cents cannot be split into {count} non-zero installments"
        )


def _monthly_rows(
    balance_cents: int,
    count: int,
    *,
    first_sequence: int,
    kind: str,
    today: date,
    note_prefix: str | None = None,
) -> list[PlannedInstallment]:
    rows = []
    for i, amount in enumerate(split_amount(balance_cents, count), start=1):
        rows.append(
            PlannedInstallment(
                sequence=first_sequence + i - 1,
                kind=kind,
                amount_cents=amount,
                due_date=add_months(today, i),
                is_paid=False,
                note=f"{note_prefix} - parcela {i}/{count}" if note_prefix else None,
            )
        )
    return rows


def plan_sale_schedule(
    *,
    total_cents: int,
    payment_method: str,
    today: date,
    installment_count: int = 1,
    down_payment_cents: int = 0,
) -> list[PlannedInstallment]:
    """
    Installment schedule created at checkout.

    - Not INSTALLMENT: one row, sequence 1, paid today, note records the method.
      Every sale gets a ledger row regardless of how it was paid.
    - INSTALLMENT: optional down payment (sequence 0, paid today, "Entrada"),
      then the remaining balance R = T - D:
        N == 1 -> one unpaid row for R due today
        N > 1  -> N rows (sequence 1..N), equal split, due today + i months
      D == T plans only the down payment row.
    """
    total_cents = require_int(total_cents, "total_cents")
    if total_cents <= 0:
        raise ValidationError("Sale total must be > 0")
    enforce_amount_cents(total_cents, "total_cents")

    method = normalize_payment_method(payment_method)
    count = _check_count(installment_count)
    down = require_int(down_payment_cents or 0, "down_payment_cents")
    if down < 0:
        raise ValidationError("down_payment_cents must be >= 0")

    if not is_installment_method(method):
        if down > 0:
            raise ValidationError("A down payment only applies to INSTALLMENT sales")
        return [
            PlannedInstallment(
                sequence=1,
                kind=KIND_REGULAR,
                amount_cents=total_cents,
                due_date=today,
                is_paid=True,
                note=f"Pagamento à vista - {PAYMENT_METHOD_LABELS[method]}",
            )
        ]

    if down > total_cents:
        raise ValidationError(
            "Down payment cannot exceed the sale total",
            details={"down_payment_cents": down, "total_cents": total_cents},
        )

    rows: list[PlannedInstallment] = []
    if down > 0:
        rows.append(
            PlannedInstallment(
                sequence=0,
                kind=KIND_DOWN_PAYMENT,
                amount_cents=down,
                due_date=today,
                is_paid=True,
                note=NOTE_DOWN_PAYMENT,
            )
        )

    remaining = total_cents - down
    if remaining == 0:
        return rows

    if count == 1:
        rows.append(
            PlannedInstallment(
                sequence=1,
                kind=KIND_REGULAR,
                amount_cents=remaining,
                due_date=today,
                is_paid=False,
            )
        )
        return rows

    _check_splittable(remaining, count)
    rows.extend(_monthly_rows(remaining, count, first_sequence=1, kind=KIND_REGULAR, today=today))
    return rows


def plan_renegotiation_schedule(
    *,
    pending_cents: int,
    down_payment_cents: int,
    installment_count: int,
    next_sequence: int,
    today: date,
) -> list[PlannedInstallment]:
    """
    Replacement schedule for a sale's pending balance P.

    Sequences continue from next_sequence (one above the sale's current
    maximum) so they never collide with rows already on the sale.
    Rejects D' > P before anything is planned.
    """
    pending_cents = require_int(pending_cents, "pending_cents")
    if pending_cents <= 0:
        raise ValidationError("Sale has no pending balance to renegotiate")

    down = require_int(down_payment_cents or 0, "down_payment_cents")
    if down < 0:
        raise ValidationError("down_payment_cents must be >= 0")
    if down > pending_cents:
        raise ValidationError(
            "Down payment exceeds pending balance",
            details={"down_payment_cents": down, "pending_cents": pending_cents},
        )
    count = _check_count(installment_count)

    rows: list[PlannedInstallment] = []
    sequence = next_sequence
    if down > 0:
        rows.append(
            PlannedInstallment(
                sequence=sequence,
                kind=KIND_RENEGOTIATED_DOWN_PAYMENT,
                amount_cents=down,
                due_date=today,
                is_paid=True,
                note=NOTE_RENEGOTIATION_DOWN_PAYMENT,
            )
        )
        sequence += 1

    remaining = pending_cents - down
    if remaining == 0:
        return rows

    _check_splittable(remaining, count)
    rows.extend(
        _monthly_rows(
            remaining,
            count,
            first_sequence=sequence,
            kind=KIND_RENEGOTIATED,
            today=today,
            note_prefix=f"Renegociação {format_br_date(today)}",
        )
    )
    return rows


def plan_payable_schedule(
    *,
    total_cents: int,
    installment_count: int,
    today: date,
) -> list[PlannedInstallment]:
    """Supplier side: T over N monthly installments starting one month out. No down payment."""
    total_cents = require_int(total_cents, "total_cents")
    if total_cents <= 0:
        raise ValidationError("Payable total must be > 0")
    enforce_amount_cents(total_cents, "total_cents")
    count = _check_count(installment_count)
    _check_splittable(total_cents, count)
    return _monthly_rows(total_cents, count, first_sequence=1, kind=KIND_REGULAR, today=today)


def format_brl(cents: int) -> str:
    """Amount as printed in reminders and receipts: 'R$ 80.00'."""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}R$ {cents // 100}.{cents % 100:02d}"
