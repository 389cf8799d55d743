from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_utc_z


class Client(db.Model):
    """
    Customer master data.

    Tax id (CPF) is stored as digits only and is unique when present; walk-in
    clients without a CPF are allowed.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("tax_id", name="uq_clients_tax_id"),
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    tax_id = db.Column(db.String(14), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
