# Overview: Service-layer operations for suppliers; CRUD plus the payable form's find-or-create.

from __future__ import annotations

from ..extensions import db
from ..models import Payable, Supplier
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ReferentialError,
    ValidationError,
    normalize_tax_id,
    validate_payload,
)
from .concurrency import run_in_transaction

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "tax_id", "phone", "address"},
    required_on_create={"name"},
)


def _clean(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=partial)
    if "tax_id" in patch:
        patch["tax_id"] = normalize_tax_id(patch["tax_id"])
    return patch


def create_supplier(payload: dict) -> Supplier:
    patch = _clean(payload, partial=False)

    def _op(uow):
        uow.step("insert supplier")
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.flush()
        return supplier

    return run_in_transaction("create_supplier", _op)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(*, search: str | None = None) -> list[Supplier]:
    q = db.session.query(Supplier)
    if search:
        q = q.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    return q.order_by(Supplier.name.asc()).all()


def find_or_create_supplier_by_name(name: str, **extra) -> Supplier:
    """
    Case-insensitive match on name; creates the supplier when none exists.

    Does not commit: used inside create_payable's transaction.
    """
    clean = (name or "").strip()
    if not clean:
        raise ValidationError("supplier_name cannot be blank")
    supplier = (
        db.session.query(Supplier)
        .filter(db.func.lower(Supplier.name) == clean.lower())
        .order_by(Supplier.id.asc())
        .first()
    )
    if supplier:
        return supplier
    patch = _clean({"name": clean, **{k: v for k, v in extra.items() if v is not None}}, partial=False)
    supplier = Supplier(**patch)
    db.session.add(supplier)
    db.session.flush()
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = _clean(payload, partial=True)

    def _op(uow):
        uow.step("load supplier")
        supplier = get_supplier(supplier_id)
        uow.step("apply update")
        for k, v in patch.items():
            setattr(supplier, k, v)
        return supplier

    return run_in_transaction("update_supplier", _op)


def delete_supplier(supplier_id: int) -> None:
    def _op(uow):
        uow.step("load supplier")
        supplier = get_supplier(supplier_id)
        uow.step("check references")
        if db.session.query(Payable.id).filter(Payable.supplier_id == supplier_id).first():
            raise ReferentialError("Supplier has payables and cannot be deleted")
        uow.step("delete supplier")
        db.session.delete(supplier)

    run_in_transaction("delete_supplier", _op)
