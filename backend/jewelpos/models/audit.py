from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only trail of ledger-affecting actions.

    sale_id / payable_id are plain integers, not foreign keys: the trail must
    outlive a deleted sale, which is exactly when it is needed.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_sale_occurred", "sale_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale.created, sale.renegotiated
    entity_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale, sale_installment
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    payable_id = db.Column(db.Integer, nullable=True, index=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "sale_id": self.sale_id,
            "payable_id": self.payable_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
