from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data.

    CODE DESIGN DECISION:
    Product.code is an 8-digit numeric string generated at creation. It is the
    payload printed in the product's QR label, so it is unique and never edited.

    PROVENANCE:
    payable_id links a product back to the supplier invoice that stocked it.
    Deleting the payable clears the link; the product stays.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.Index("ix_products_description", "description"),
        db.Index("ix_products_category", "category"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(8), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(80), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    sale_price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(512), nullable=True)

    payable_id = db.Column(db.Integer, db.ForeignKey("payables.id", ondelete="SET NULL"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    payable = db.relationship("Payable", backref=db.backref("products", lazy=True, passive_deletes=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} description={self.description!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "sale_price_cents": self.sale_price_cents,
            "cost_cents": self.cost_cents,
            "stock_quantity": self.stock_quantity,
            "image_url": self.image_url,
            "payable_id": self.payable_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
