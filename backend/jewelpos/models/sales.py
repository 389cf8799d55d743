from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_iso_date, to_utc_z

class Sale(db.Model):
    """
    Sale header.

    A sale is created complete at checkout (items + installment schedule +
    stock decrement in one transaction). Afterwards only its installments
    change; items and total are immutable.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_sold_at", "sold_at"),
        db.Index("ix_sales_client_sold_at", "client_id", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    total_cents = db.Column(db.Integer, nullable=False)

    # PIX, CREDIT_CARD, DEBIT_CARD, CASH, INSTALLMENT
    payment_method = db.Column(db.String(16), nullable=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} client_id={self.client_id} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "sold_at": to_utc_z(self.sold_at),
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Line items on a sale. unit_price_cents is the price at the time of sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", passive_deletes=True),
    )
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_description": self.product.description if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Renegotiation(db.Model):
    """
    One renegotiation event on a sale.

    IMMUTABLE: written once by renegotiation_service. The installments it
    cancelled point at it through cancelled_by_renegotiation_id; the ones it
    created point at it through renegotiation_id.
    """
    __tablename__ = "renegotiations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    pending_before_cents = db.Column(db.Integer, nullable=False)
    down_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    installment_count = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    sale = db.relationship(
        "Sale",
        backref=db.backref(
            "renegotiations",
            lazy=True,
            cascade="all, delete-orphan",
            passive_deletes=True,
            order_by="Renegotiation.id",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "pending_before_cents": self.pending_before_cents,
            "down_payment_cents": self.down_payment_cents,
            "installment_count": self.installment_count,
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
        }


class SaleInstallment(db.Model):
    """
    Receivable installment ("parcela") of a sale.

    ORDERING: sequence is monotonic per sale and never reused. The down
    payment taken at checkout is sequence 0; the ordinary schedule is 1..N;
    each renegotiation continues above the current maximum. What a row *is*
    lives in kind, not in the magnitude of its number.

    CANCELLATION: a renegotiation does not delete rows. It marks them paid,
    stamps the note and sets cancelled_by_renegotiation_id, so the original
    schedule stays visible and drops out of pending totals.
    """
    __tablename__ = "sale_installments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "sequence", name="uq_sale_installments_sale_sequence"),
        db.Index("ix_sale_installments_due_paid", "due_date", "is_paid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    sequence = db.Column(db.Integer, nullable=False)
    # REGULAR, DOWN_PAYMENT, RENEGOTIATED_DOWN_PAYMENT, RENEGOTIATED
    kind = db.Column(db.String(32), nullable=False, default="REGULAR")

    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    renegotiation_id = db.Column(
        db.Integer, db.ForeignKey("renegotiations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    cancelled_by_renegotiation_id = db.Column(
        db.Integer, db.ForeignKey("renegotiations.id", ondelete="CASCADE"), nullable=True, index=True
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship(
        "Sale",
        backref=db.backref(
            "installments",
            lazy=True,
            cascade="all, delete-orphan",
            passive_deletes=True,
            order_by="SaleInstallment.sequence",
        ),
    )
    renegotiation = db.relationship("Renegotiation", foreign_keys=[renegotiation_id])
    cancelled_by_renegotiation = db.relationship("Renegotiation", foreign_keys=[cancelled_by_renegotiation_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_by_renegotiation_id is not None

    def __repr__(self) -> str:
        return (
            f"<SaleInstallment id={self.id} sale_id={self.sale_id} seq={self.sequence} "
            f"kind={self.kind} amount_cents={self.amount_cents} paid={self.is_paid}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sequence": self.sequence,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "note": self.note,
            "is_cancelled": self.is_cancelled,
            "renegotiation_id": self.renegotiation_id,
            "cancelled_by_renegotiation_id": self.cancelled_by_renegotiation_id,
            "version_id": self.version_id,
        }
