# Overview: Service-layer operations for WhatsApp payment reminders; settings, collection, formatting and dispatch.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Client, NotificationSettings, Sale, SaleInstallment
from ..validation import TransientIOError, ValidationError, require_int
from jewelpos.time_utils import business_now, to_business_time, utcnow
from .schedule_service import format_brl
from .whatsapp_client import RelayError, WhatsAppRelayClient

"""
Reminder dispatcher invariants

- Reads the ledger; never writes installments. The only write is
  NotificationSettings.last_sent_at after a successful send.
- Re-running is safe: at worst the same reminder is sent twice.
- Skips (no send) when settings are missing or inactive, on weekends unless
  send_on_weekends, and when nothing is due. Unless forced, also before the
  configured send time and when a reminder already went out today.
"""

SETTINGS_FIELDS = {"phone", "api_key", "send_time", "lead_days", "is_active", "send_on_weekends"}
MAX_LEAD_DAYS = 30
_SEND_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

SKIP_INACTIVE = "inactive"
SKIP_WEEKEND = "weekend"
SKIP_BEFORE_SEND_TIME = "before_send_time"
SKIP_ALREADY_SENT = "already_sent"
SKIP_NOTHING_DUE = "nothing_due"


@dataclass(frozen=True)
class ReminderItem:
    installment_id: int
    sale_id: int
    client_name: str
    amount_cents: int
    due_date: date


@dataclass
class ReminderGroup:
    days_ahead: int
    due_date: date
    items: list[ReminderItem] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return sum(i.amount_cents for i in self.items)


@dataclass
class DispatchResult:
    sent: bool
    reason: str | None = None
    message: str | None = None
    installment_count: int = 0
    total_cents: int = 0
    relay_response: str | None = None

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "reason": self.reason,
            "message": self.message,
            "installment_count": self.installment_count,
            "total_cents": self.total_cents,
        }


def get_settings() -> NotificationSettings | None:
    return db.session.query(NotificationSettings).order_by(NotificationSettings.id.asc()).first()


def _clean_phone(value) -> str:
    digits = "".join(ch for ch in str(value or "") if ch.isdigit())
    if not 10 <= len(digits) <= 15:
        raise ValidationError("phone must have 10 to 15 digits (country code included, no '+')")
    return digits


def _clean_lead_days(value) -> list[int]:
    if not isinstance(value, list) or not value:
        raise ValidationError("lead_days must be a non-empty list of integers")
    days = {require_int(v, "lead_days", minimum=0) for v in value}
    if max(days) > MAX_LEAD_DAYS:
        raise ValidationError(f"lead_days cannot exceed {MAX_LEAD_DAYS}")
    return sorted(days, reverse=True)


def _clean_settings(payload: dict, *, creating: bool) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - SETTINGS_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")
    if creating:
        missing = sorted(f for f in ("phone", "api_key") if not payload.get(f))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}
    if "phone" in payload:
        patch["phone"] = _clean_phone(payload["phone"])
    if "api_key" in payload:
        key = str(payload["api_key"] or "").strip()
        if not key:
            raise ValidationError("api_key cannot be blank")
        patch["api_key"] = key
    if "send_time" in payload:
        send_time = str(payload["send_time"] or "").strip()
        if not _SEND_TIME_RE.match(send_time):
            raise ValidationError("send_time must be HH:MM")
        patch["send_time"] = send_time
    if "lead_days" in payload:
        patch["lead_days"] = _clean_lead_days(payload["lead_days"])
    for flag in ("is_active", "send_on_weekends"):
        if flag in payload:
            if not isinstance(payload[flag], bool):
                raise ValidationError(f"{flag} must be true or false")
            patch[flag] = payload[flag]
    return patch


def save_settings(payload: dict) -> NotificationSettings:
    """Create or update the settings singleton."""
    settings = get_settings()
    patch = _clean_settings(payload, creating=settings is None)
    if settings is None:
        settings = NotificationSettings(**patch)
        db.session.add(settings)
    else:
        for k, v in patch.items():
            setattr(settings, k, v)
    db.session.commit()
    current_app.logger.info("Notification settings saved (active=%s)", settings.is_active)
    return settings


def collect_due_reminders(today: date, lead_days: list[int] | None = None) -> list[ReminderGroup]:
    """
    Unpaid installments due exactly today + d for each d in lead_days.

    Groups are ordered by days ahead (due today first); items by due date,
    then client name. Rows cancelled by a renegotiation are paid, so they
    never appear.
    """
    if lead_days is None:
        settings = get_settings()
        lead_days = list(settings.lead_days) if settings else [3, 2, 0]
    offsets = sorted(set(lead_days))
    by_date = {today + timedelta(days=d): d for d in offsets}

    rows = (
        db.session.query(SaleInstallment, Client.name)
        .join(Sale, Sale.id == SaleInstallment.sale_id)
        .join(Client, Client.id == Sale.client_id)
        .filter(
            SaleInstallment.is_paid.is_(False),
            SaleInstallment.cancelled_by_renegotiation_id.is_(None),
            SaleInstallment.due_date.in_(list(by_date.keys())),
        )
        .order_by(SaleInstallment.due_date.asc(), Client.name.asc(), SaleInstallment.id.asc())
        .all()
    )

    groups: dict[int, ReminderGroup] = {}
    for inst, client_name in rows:
        d = by_date[inst.due_date]
        group = groups.setdefault(d, ReminderGroup(days_ahead=d, due_date=inst.due_date))
        group.items.append(ReminderItem(
            installment_id=inst.id,
            sale_id=inst.sale_id,
            client_name=client_name,
            amount_cents=inst.amount_cents,
            due_date=inst.due_date,
        ))
    return [groups[d] for d in sorted(groups)]


def _group_heading(days_ahead: int, count: int) -> str:
    if days_ahead == 0:
        return f"🔴 *VENCENDO HOJE* ({count}):"
    label = "DIA" if days_ahead == 1 else "DIAS"
    icon = "⚠️" if days_ahead <= 2 else "📅"
    return f"{icon} *VENCE EM {days_ahead} {label}* ({count}):"


def format_reminder_message(groups: list[ReminderGroup], today: date, business_name: str | None = None) -> str:
    business = (business_name or current_app.config.get("BUSINESS_NAME") or "").upper()
    lines = [f"🔔 *LEMBRETES {business}* - {today.strftime('%d/%m')}", ""]
    total = 0
    for group in groups:
        lines.append(_group_heading(group.days_ahead, len(group.items)))
        for item in group.items:
            lines.append(f"• {item.client_name} - {format_brl(item.amount_cents)}")
            total += item.amount_cents
        lines.append("")
    lines.append(f"💰 *Total a receber:* {format_brl(total)}")
    lines.append("")
    lines.append("---")
    lines.append(f"_Enviado automaticamente pelo sistema {business_name or current_app.config.get('BUSINESS_NAME')}_")
    return "\n".join(lines)


def _parse_send_time(value: str) -> tuple[int, int]:
    m = _SEND_TIME_RE.match(value or "")
    if not m:
        return 10, 0
    return int(m.group(1)), int(m.group(2))


def build_reminder_preview(today: date) -> str | None:
    groups = collect_due_reminders(today)
    if not groups:
        return None
    return format_reminder_message(groups, today)


def dispatch_reminders(
    *,
    today: date | None = None,
    now: datetime | None = None,
    force: bool = False,
    client: WhatsAppRelayClient | None = None,
) -> DispatchResult:
    """
    The daily reminder job (externally scheduled, e.g. cron -> flask reminders dispatch).

    now is store wall-clock time. RelayError / TransientIOError propagate
    after being logged; last_sent_at is only recorded on success.
    """
    logger = current_app.logger
    now = now or business_now()
    today = today or now.date()

    settings = get_settings()
    if not settings or not settings.is_active:
        logger.info("Reminders skipped: notifications inactive or not configured")
        return DispatchResult(sent=False, reason=SKIP_INACTIVE)

    if today.weekday() >= 5 and not settings.send_on_weekends:
        logger.info("Reminders skipped: weekend sending disabled")
        return DispatchResult(sent=False, reason=SKIP_WEEKEND)

    if not force:
        hour, minute = _parse_send_time(settings.send_time)
        if (now.hour, now.minute) < (hour, minute):
            logger.info("Reminders skipped: before send time %s", settings.send_time)
            return DispatchResult(sent=False, reason=SKIP_BEFORE_SEND_TIME)
        last = to_business_time(settings.last_sent_at)
        if last is not None and last.date() == today:
            logger.info("Reminders skipped: already sent today at %s", last)
            return DispatchResult(sent=False, reason=SKIP_ALREADY_SENT)

    groups = collect_due_reminders(today, list(settings.lead_days or []))
    if not groups:
        logger.info("Reminders skipped: no installments due for lead days %s", settings.lead_days)
        return DispatchResult(sent=False, reason=SKIP_NOTHING_DUE)

    message = format_reminder_message(groups, today)
    count = sum(len(g.items) for g in groups)
    total = sum(g.total_cents for g in groups)

    owns_client = client is None
    client = client or WhatsAppRelayClient()
    try:
        relay_response = client.send(settings.phone, settings.api_key, message)
    except RelayError as exc:
        logger.error("WhatsApp relay rejected reminder: HTTP %s %s", exc.status_code, exc.body)
        raise
    except TransientIOError as exc:
        logger.error("WhatsApp relay unreachable, reminder not sent: %s", exc)
        raise
    finally:
        if owns_client:
            client.close()

    settings.last_sent_at = utcnow()
    db.session.commit()
    logger.info("Reminder sent: %d installments, %d cents", count, total)
    return DispatchResult(
        sent=True,
        message=message,
        installment_count=count,
        total_cents=total,
        relay_response=relay_response,
    )


def send_test_message(
    *,
    phone: str | None = None,
    api_key: str | None = None,
    client: WhatsAppRelayClient | None = None,
) -> str:
    """Send a fixed test text using the saved settings (or explicit overrides)."""
    settings = get_settings()
    phone = _clean_phone(phone or (settings.phone if settings else None))
    api_key = (api_key or (settings.api_key if settings else "") or "").strip()
    if not api_key:
        raise ValidationError("api_key is required")

    business = current_app.config.get("BUSINESS_NAME")
    text = (
        f"✅ *Teste de notificação - {business}*\n\n"
        f"Se você recebeu esta mensagem, os lembretes automáticos estão configurados corretamente."
    )
    owns_client = client is None
    client = client or WhatsAppRelayClient()
    try:
        client.send(phone, api_key, text)
    finally:
        if owns_client:
            client.close()
    current_app.logger.info("Test reminder sent to %s", phone[:-4] + "****")
    return text
