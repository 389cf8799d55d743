"""
Payable tests: supplier resolution, stocked products, installments and deletion.
"""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from jewelpos.extensions import db
from jewelpos.models import Payable, PayableInstallment, Product, Supplier
from jewelpos.services import payable_service
from jewelpos.services.payable_service import (
    create_payable,
    delete_payable,
    get_payable,
    list_payables,
    toggle_payable_installment_paid,
    update_payable_installment,
)
from jewelpos.services.supplier_service import create_supplier, delete_supplier
from jewelpos.validation import NotFoundError, ReferentialError, TransientIOError, ValidationError


TODAY = date(2026, 3, 10)


def _invoice(**overrides):
    payload = {
        "supplier_name": "Prata Fina Distribuidora",
        "description": "NF 1234 - lote de brincos",
        "installment_count": 2,
        "payment_method": "bank_slip",
        "products": [
            {"description": "Brinco argola", "category": "Brincos", "quantity": 4, "cost_cents": 1500},
            {"description": "Brinco ponto de luz", "category": "Brincos", "quantity": 2, "cost_cents": 2000},
        ],
    }
    payload.update(overrides)
    return payload


class TestCreatePayable:

    def test_total_and_schedule_from_products(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)

        assert payable.total_cents == 10000
        assert payable.payment_method == "BANK_SLIP"
        rows = (
            db.session.query(PayableInstallment)
            .filter_by(payable_id=payable.id)
            .order_by(PayableInstallment.sequence)
            .all()
        )
        assert [(r.sequence, r.amount_cents, r.due_date, r.is_paid) for r in rows] == [
            (1, 5000, date(2026, 4, 10), False),
            (2, 5000, date(2026, 5, 10), False),
        ]

    def test_products_are_stocked_with_suggested_price(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)

        products = db.session.query(Product).filter_by(payable_id=payable.id).order_by(Product.id).all()
        assert [(p.description, p.stock_quantity, p.cost_cents, p.sale_price_cents) for p in products] == [
            ("Brinco argola", 4, 1500, 3000),
            ("Brinco ponto de luz", 2, 2000, 4000),
        ]
        assert all(len(p.code) == 8 and p.code.isdigit() for p in products)

    def test_supplier_found_by_name_case_insensitively(self, db_session):
        existing = create_supplier({"name": "Prata Fina Distribuidora"})

        payable = create_payable(_invoice(supplier_name="prata fina distribuidora"), today=TODAY)

        assert payable.supplier_id == existing.id
        assert db.session.query(Supplier).count() == 1

    def test_supplier_created_when_missing(self, db_session):
        payable = create_payable(_invoice(supplier_phone="11988887777"), today=TODAY)

        supplier = db.session.get(Supplier, payable.supplier_id)
        assert supplier.name == "Prata Fina Distribuidora"
        assert supplier.phone == "11988887777"

    def test_explicit_total_without_products(self, db_session):
        supplier = create_supplier({"name": "Aluguel"})

        payable = create_payable(
            {"supplier_id": supplier.id, "description": "Aluguel março", "total_cents": 10000, "installment_count": 3},
            today=TODAY,
        )

        amounts = [i.amount_cents for i in payable.installments]
        assert amounts == [3333, 3333, 3334]

    @pytest.mark.parametrize("overrides", [
        {"description": ""},
        {"supplier_name": None},
        {"installment_count": 0},
        {"payment_method": "BOLETO_MAGICO"},
        {"products": [{"description": "", "quantity": 1, "cost_cents": 10}]},
        {"products": None},
    ])
    def test_rejects_invalid_payloads(self, db_session, overrides):
        with pytest.raises(ValidationError):
            create_payable(_invoice(**overrides), today=TODAY)

        assert db.session.query(Payable).count() == 0
        assert db.session.query(Product).count() == 0

    def test_unknown_supplier_id_writes_nothing(self, db_session):
        with pytest.raises(NotFoundError):
            create_payable(_invoice(supplier_id=999), today=TODAY)

        assert db.session.query(Payable).count() == 0
        assert db.session.query(Product).count() == 0


class TestPayableInstallments:

    def test_toggle_paid(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)
        first = payable.installments[0]

        inst = toggle_payable_installment_paid(first.id)
        assert inst.is_paid is True
        assert inst.paid_at is not None

        inst = toggle_payable_installment_paid(first.id)
        assert inst.is_paid is False
        assert inst.paid_at is None

    def test_update_amount_and_due_date(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)
        second = payable.installments[1]

        inst = update_payable_installment(second.id, {"amount_cents": 4500, "due_date": "2026-05-20"})

        assert inst.amount_cents == 4500
        assert inst.due_date == date(2026, 5, 20)

    def test_update_rejects_paid_flag(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)
        with pytest.raises(ValidationError):
            update_payable_installment(payable.installments[0].id, {"is_paid": True})

    def test_unknown_installment(self, db_session):
        with pytest.raises(NotFoundError):
            toggle_payable_installment_paid(777)


class TestReadsAndDelete:

    def test_status_filter(self, db_session):
        open_one = create_payable(_invoice(), today=TODAY)
        settled = create_payable(_invoice(installment_count=1, products=None, total_cents=500), today=TODAY)
        toggle_payable_installment_paid(settled.installments[0].id)

        assert {p["id"] for p in list_payables(today=TODAY)} == {open_one.id, settled.id}
        assert [p["id"] for p in list_payables(status="pending", today=TODAY)] == [open_one.id]
        assert [p["id"] for p in list_payables(status="PAID", today=TODAY)] == [settled.id]

        with pytest.raises(ValidationError):
            list_payables(status="LATE")

    def test_detail_includes_supplier_and_products(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)

        view = get_payable(payable.id, today=TODAY)

        assert view["supplier"]["name"] == "Prata Fina Distribuidora"
        assert len(view["products"]) == 2
        assert view["summary"]["total_pending_cents"] == 10000
        assert [i["status"] for i in view["installments"]] == ["UPCOMING", "UPCOMING"]

    def test_delete_unlinks_products(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)
        payable_id = payable.id

        delete_payable(payable_id)

        assert db.session.get(Payable, payable_id) is None
        assert db.session.query(PayableInstallment).count() == 0
        products = db.session.query(Product).all()
        assert len(products) == 2
        assert all(p.payable_id is None for p in products)

    def test_supplier_with_payables_cannot_be_deleted(self, db_session):
        payable = create_payable(_invoice(), today=TODAY)

        with pytest.raises(ReferentialError):
            delete_supplier(payable.supplier_id)


class TestCreatePayableAtomicity:

    def test_failure_after_products_leaves_nothing(self, db_session, monkeypatch, caplog):
        def _locked(**kwargs):
            raise OperationalError("INSERT INTO audit_events", {}, Exception("database is locked"))

        monkeypatch.setattr(payable_service, "record_event", _locked)

        with pytest.raises(TransientIOError):
            create_payable(_invoice(), today=TODAY)

        assert db.session.query(Payable).count() == 0
        assert db.session.query(PayableInstallment).count() == 0
        assert db.session.query(Product).count() == 0
        assert db.session.query(Supplier).count() == 0
        assert "create_payable failed at step 'audit'" in caplog.text
