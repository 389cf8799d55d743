from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


DEFAULT_BUSINESS_TIMEZONE = "America/Sao_Paulo"


def _business_zone() -> ZoneInfo:
    name = None
    if has_app_context():
        name = current_app.config.get("BUSINESS_TIMEZONE")
    return ZoneInfo(name or DEFAULT_BUSINESS_TIMEZONE)


def utcnow() -> datetime:
    """Current instant as naive UTC, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_now() -> datetime:
    """Wall-clock time at the store (naive, in BUSINESS_TIMEZONE)."""
    return datetime.now(_business_zone()).replace(tzinfo=None)


def business_today() -> date:
    """
    The store's calendar date.

    Due dates and overdue status are judged against this, not the UTC date,
    so a sale rung up at 22:00 in Brazil is still "today".
    """
    return business_now().date()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """"YYYY-MM-DD" -> date. Blank input gives None; a time suffix is dropped."""
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value).strip()
    return date.fromisoformat(text[:10]) if text else None


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Naive-UTC timestamp -> "2026-03-10T14:00:00Z"."""
    if dt is None:
        return None
    aware = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    stamp = aware.astimezone(timezone.utc).replace(microsecond=0)
    return stamp.isoformat().replace("+00:00", "Z")


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def format_br_date(d: date) -> str:
    """dd/mm/yyyy, the way dates are shown to the store and its clients."""
    return d.strftime("%d/%m/%Y")


def to_business_time(dt_utc: Optional[datetime]) -> Optional[datetime]:
    """Naive-UTC timestamp -> naive wall-clock time in BUSINESS_TIMEZONE."""
    if dt_utc is None:
        return None
    aware = dt_utc if dt_utc.tzinfo else dt_utc.replace(tzinfo=timezone.utc)
    return aware.astimezone(_business_zone()).replace(tzinfo=None)


def business_midnight_utc(d: date) -> datetime:
    """Start of business day d as naive UTC, for sold_at range filters."""
    local = datetime(d.year, d.month, d.day, tzinfo=_business_zone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)
