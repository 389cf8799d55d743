"""
Input checking shared by the services.

Money is integer cents everywhere. Model payloads are checked against the
SQLAlchemy column metadata plus an allowlist of client-writable fields, so a
request can never set ids, stock counters or timestamps the server owns.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text

from jewelpos.time_utils import parse_iso_date


# R$ 9.999.999,99
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem. Raised before anything is written."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level: the referenced row does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate tax id)."""


class ReferentialError(ValueError):
    """409-level: delete blocked because other rows still reference the target."""


class TransientIOError(RuntimeError):
    """503-level: the data store could not be reached or stayed locked."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    writable_fields: set[str]
    required_on_create: set[str] = dataclass_field(default_factory=set)


def require_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and digit strings. Booleans, floats, "12.5" and "1e3" are
    rejected rather than silently truncated.
    """
    if isinstance(value, str):
        text = value.strip()
        unsigned = text[1:] if text.startswith("-") else text
        if not unsigned.isdigit():
            raise ValidationError(f"{field} must be a whole number")
        value = int(text)
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be a whole number, not a decimal")
    elif isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be a whole number")

    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return value


def _as_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def _as_date(value: Any, field: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")
    return parsed


def _as_text(value: Any, field: str) -> str:
    return str(value).strip()


def _coercer_for(column) -> Callable[[Any, str], Any] | None:
    coltype = column.type
    if isinstance(coltype, DateTime):
        # server-owned timestamps; never client-writable
        return None
    if isinstance(coltype, Integer):
        return require_int
    if isinstance(coltype, Boolean):
        return _as_bool
    if isinstance(coltype, Date):
        return _as_date
    if isinstance(coltype, (String, Text)):
        return _as_text
    return None


def _check_text(column, value: str) -> str | None:
    if value == "":
        if not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        # optional text is stored as NULL so unique tax ids ignore blanks
        return None
    limit = getattr(column.type, "length", None)
    if limit and len(value) > limit:
        raise ValidationError(f"{column.key} exceeds max length {limit}")
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a JSON body into a column patch.

    partial=False is create semantics (required_on_create enforced);
    partial=True validates only the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        column = columns.get(key)
        if key not in policy.writable_fields or column is None:
            raise ValidationError(f"Field not allowed: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        coerce = _coercer_for(column)
        if coerce is None:
            raise ValidationError(f"Field not allowed: {key}")
        value = coerce(raw, key)
        if isinstance(value, str):
            value = _check_text(column, value)
        patch[key] = value

    return patch


def enforce_amount_cents(value: int, field: str, *, allow_zero: bool = True) -> None:
    floor_ok = value > 0 or (allow_zero and value == 0)
    if not floor_ok:
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed R$ {MAX_AMOUNT_CENTS / 100:,.2f}")


def enforce_rules_product(patch: dict) -> None:
    """Price and stock rules the column types cannot express."""
    for key in ("sale_price_cents", "cost_cents"):
        if patch.get(key) is not None:
            enforce_amount_cents(patch[key], key)
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        raise ValidationError("stock_quantity must be >= 0")


def normalize_tax_id(value: str | None) -> str | None:
    """CPF/CNPJ are compared by digits only ("123.456.789-00" == "12345678900")."""
    if value is None:
        return None
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return digits or None
