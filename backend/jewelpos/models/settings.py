from __future__ import annotations

from ..extensions import db
from jewelpos.time_utils import to_utc_z


class NotificationSettings(db.Model):
    """
    WhatsApp reminder configuration. Singleton: the service layer only ever
    reads/updates the first row.

    lead_days holds day offsets before the due date, e.g. [3, 2, 0] means
    "3 days before", "2 days before" and "due today".
    """
    __tablename__ = "notification_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    phone = db.Column(db.String(20), nullable=False)
    api_key = db.Column(db.String(128), nullable=False)
    send_time = db.Column(db.String(5), nullable=False, default="10:00")
    lead_days = db.Column(db.JSON, nullable=False, default=lambda: [3, 2, 0])
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    send_on_weekends = db.Column(db.Boolean, nullable=False, default=False)

    last_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self, *, include_secret: bool = False) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "api_key": self.api_key if include_secret else _mask(self.api_key),
            "send_time": self.send_time,
            "lead_days": list(self.lead_days or []),
            "is_active": self.is_active,
            "send_on_weekends": self.send_on_weekends,
            "last_sent_at": to_utc_z(self.last_sent_at) if self.last_sent_at else None,
            "updated_at": to_utc_z(self.updated_at),
        }


def _mask(secret: str | None) -> str | None:
    if not secret:
        return secret
    return "*" * max(len(secret) - 2, 0) + secret[-2:]
