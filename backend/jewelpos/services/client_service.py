# Overview: Service-layer operations for clients; CRUD with tax id uniqueness and delete protection.

from __future__ import annotations

from ..extensions import db
from ..models import Client, Sale
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ReferentialError,
    ValidationError,
    normalize_tax_id,
    validate_payload,
)
from .concurrency import run_in_transaction

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "tax_id", "phone", "address"},
    required_on_create={"name"},
)


def _clean(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=partial)
    if "tax_id" in patch:
        patch["tax_id"] = normalize_tax_id(patch["tax_id"])
        if patch["tax_id"] and len(patch["tax_id"]) not in (11, 14):
            raise ValidationError("tax_id must have 11 (CPF) or 14 (CNPJ) digits")
    return patch


def _ensure_tax_id_free(tax_id: str | None, *, exclude_id: int | None = None) -> None:
    if not tax_id:
        return
    q = db.session.query(Client.id).filter(Client.tax_id == tax_id)
    if exclude_id is not None:
        q = q.filter(Client.id != exclude_id)
    if q.first():
        raise ConflictError("This CPF is already registered")


def create_client(payload: dict) -> Client:
    patch = _clean(payload, partial=False)

    def _op(uow):
        uow.step("check tax id")
        _ensure_tax_id_free(patch.get("tax_id"))
        uow.step("insert client")
        client = Client(**patch)
        db.session.add(client)
        db.session.flush()
        return client

    return run_in_transaction("create_client", _op)


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    return client


def list_clients(*, search: str | None = None) -> list[Client]:
    q = db.session.query(Client)
    if search:
        like = f"%{search.strip()}%"
        digits = normalize_tax_id(search)
        conditions = [Client.name.ilike(like), Client.phone.ilike(like)]
        if digits:
            conditions.append(Client.tax_id.like(f"%{digits}%"))
        q = q.filter(db.or_(*conditions))
    return q.order_by(Client.created_at.desc(), Client.id.desc()).all()


def update_client(client_id: int, payload: dict) -> Client:
    patch = _clean(payload, partial=True)

    def _op(uow):
        uow.step("load client")
        client = get_client(client_id)
        uow.step("check tax id")
        if "tax_id" in patch:
            _ensure_tax_id_free(patch["tax_id"], exclude_id=client_id)
        uow.step("apply update")
        for k, v in patch.items():
            setattr(client, k, v)
        return client

    return run_in_transaction("update_client", _op)


def delete_client(client_id: int) -> None:
    def _op(uow):
        uow.step("load client")
        client = get_client(client_id)
        uow.step("check references")
        if db.session.query(Sale.id).filter(Sale.client_id == client_id).first():
            raise ReferentialError("Client has sales and cannot be deleted")
        uow.step("delete client")
        db.session.delete(client)

    run_in_transaction("delete_client", _op)
