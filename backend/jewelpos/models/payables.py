from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_iso_date, to_utc_z


class Supplier(db.Model):
    """Supplier ("fornecedor") master data. Referenced by payables."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    tax_id = db.Column(db.String(14), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Payable(db.Model):
    """
    Supplier invoice / expense ("conta a pagar").

    Mirrors the receivable side without down payments or renegotiation:
    total_cents is split across installment_count monthly installments.
    """
    __tablename__ = "payables"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    installment_count = db.Column(db.Integer, nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    supplier = db.relationship("Supplier", backref=db.backref("payables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "description": self.description,
            "total_cents": self.total_cents,
            "installment_count": self.installment_count,
            "invoice_number": self.invoice_number,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }


class PayableInstallment(db.Model):
    """Installment of a payable ("parcela a pagar")."""
    __tablename__ = "payable_installments"
    __table_args__ = (
        db.UniqueConstraint("payable_id", "sequence", name="uq_payable_installments_payable_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payable_id = db.Column(db.Integer, db.ForeignKey("payables.id", ondelete="CASCADE"), nullable=False, index=True)

    sequence = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    payable = db.relationship(
        "Payable",
        backref=db.backref(
            "installments",
            lazy=True,
            cascade="all, delete-orphan",
            passive_deletes=True,
            order_by="PayableInstallment.sequence",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payable_id": self.payable_id,
            "sequence": self.sequence,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }
