"""
Inventory and client tests: codes, stock, catalog, images and delete protection.
"""

import os
from datetime import date

import pytest

from jewelpos.extensions import db
from jewelpos.models import AuditEvent, Client, Product
from jewelpos.services.checkout_service import finalize_sale
from jewelpos.services.client_service import (
    create_client,
    delete_client,
    list_clients,
    update_client,
)
from jewelpos.services.payable_service import create_payable
from jewelpos.services import products_service
from jewelpos.services.products_service import (
    add_stock,
    attach_product_image,
    create_product,
    delete_product,
    get_product_by_code,
    get_product_origin,
    list_catalog,
    list_categories,
    list_products,
    update_product,
)
from jewelpos.services.storage_service import storage_root
from jewelpos.validation import ConflictError, NotFoundError, ReferentialError, TransientIOError, ValidationError


TODAY = date(2026, 3, 10)


class TestProducts:

    def test_created_product_gets_an_8_digit_code(self, db_session):
        product = create_product({"description": "Pulseira de prata", "sale_price_cents": 8900})

        assert len(product.code) == 8
        assert product.code.isdigit()
        assert product.stock_quantity == 0

    def test_lookup_by_code(self, db_session, make_product):
        ring = make_product()

        assert get_product_by_code(f" {ring.code} ").id == ring.id

    @pytest.mark.parametrize("code", ["123", "abcdefgh", "123456789", ""])
    def test_lookup_rejects_malformed_codes(self, db_session, code):
        with pytest.raises(ValidationError):
            get_product_by_code(code)

    def test_lookup_unknown_code(self, db_session):
        with pytest.raises(NotFoundError):
            get_product_by_code("12345678")

    def test_code_is_not_writable(self, db_session, make_product):
        ring = make_product()
        with pytest.raises(ValidationError):
            update_product(ring.id, {"code": "11111111"})

    def test_negative_stock_rejected(self, db_session):
        with pytest.raises(ValidationError):
            create_product({"description": "Colar", "sale_price_cents": 100, "stock_quantity": -1})

    def test_add_stock(self, db_session, make_product):
        ring = make_product(stock_quantity=2)

        product = add_stock(ring.id, 3)

        assert product.stock_quantity == 5
        event = db.session.query(AuditEvent).filter_by(event_type="stock.added").one()
        assert '"added": 3' in event.payload

    def test_add_stock_requires_positive_quantity(self, db_session, make_product):
        ring = make_product()
        with pytest.raises(ValidationError):
            add_stock(ring.id, 0)

    def test_sold_product_cannot_be_deleted(self, db_session, make_client, make_product):
        customer = make_client()
        ring = make_product()
        finalize_sale(customer.id, [{"product_id": ring.id, "quantity": 1}], "CASH", today=TODAY)

        with pytest.raises(ReferentialError):
            delete_product(ring.id)

        assert db.session.get(Product, ring.id) is not None

    def test_unsold_product_can_be_deleted(self, db_session, make_product):
        ring = make_product()
        delete_product(ring.id)
        assert db.session.get(Product, ring.id) is None

    def test_search_and_filters(self, db_session, make_product):
        make_product(description="Anel solitário", category="Anéis")
        make_product(description="Colar veneziana", category="Colares", stock_quantity=0)

        assert [p.description for p in list_products(search="colar")] == ["Colar veneziana"]
        assert [p.description for p in list_products(in_stock=True)] == ["Anel solitário"]
        assert list_categories() == ["Anéis", "Colares"]
        assert list_categories(in_stock=True) == ["Anéis"]

    def test_origin(self, db_session, make_product):
        payable = create_payable(
            {
                "supplier_name": "Ouro Leve",
                "description": "NF 88",
                "products": [{"description": "Corrente", "quantity": 1, "cost_cents": 5000}],
            },
            today=TODAY,
        )
        stocked = db.session.query(Product).filter_by(payable_id=payable.id).one()
        loose = make_product()

        origin = get_product_origin(stocked.id)
        assert origin["id"] == payable.id
        assert origin["supplier"]["name"] == "Ouro Leve"
        assert get_product_origin(loose.id) is None


class TestImages:

    def test_upload_stores_file_and_sets_url(self, db_session, make_product):
        ring = make_product()

        product = attach_product_image(ring.id, b"\x89PNG fake", "foto.PNG")

        assert product.image_url.startswith("/media/product-images/products/")
        assert product.image_url.endswith(".png")
        rel = product.image_url.split("/media/product-images/", 1)[1]
        with open(os.path.join(storage_root(), *rel.split("/")), "rb") as fh:
            assert fh.read() == b"\x89PNG fake"

    def test_rejects_unknown_extension(self, db_session, make_product):
        ring = make_product()
        with pytest.raises(ValidationError):
            attach_product_image(ring.id, b"MZ", "virus.exe")

    def test_failed_save_removes_stored_file(self, db_session, make_product, monkeypatch):
        ring = make_product()
        folder = os.path.join(storage_root(), "products")
        before = set(os.listdir(folder)) if os.path.isdir(folder) else set()

        def _locked(operation, func):
            raise TransientIOError(f"{operation}: data store unavailable, try again")

        monkeypatch.setattr(products_service, "run_in_transaction", _locked)

        with pytest.raises(TransientIOError):
            attach_product_image(ring.id, b"\x89PNG fake", "foto.png")

        after = set(os.listdir(folder)) if os.path.isdir(folder) else set()
        assert after == before
        assert db.session.get(Product, ring.id).image_url is None


class TestCatalog:

    def test_lists_in_stock_products_with_inquiry_link(self, db_session, make_product):
        make_product(description="Brinco gota", category="Brincos")
        make_product(description="Anel esgotado", stock_quantity=0)

        catalog = list_catalog()

        assert catalog["business_name"] == "Rubia Joias"
        assert catalog["whatsapp_url"] == "https://wa.me/5511999998888"
        assert [p["description"] for p in catalog["products"]] == ["Brinco gota"]
        link = catalog["products"][0]["whatsapp_link"]
        assert link.startswith("https://wa.me/5511999998888?text=")
        assert "Brinco%20gota" in link
        assert catalog["categories"] == ["Brincos"]

    def test_category_filter(self, db_session, make_product):
        make_product(description="Brinco gota", category="Brincos")
        make_product(description="Anel liso", category="Anéis")

        catalog = list_catalog(category="Anéis")

        assert [p["description"] for p in catalog["products"]] == ["Anel liso"]


class TestClients:

    def test_tax_id_is_stored_as_digits(self, db_session):
        client = create_client({"name": "Joana Lima", "tax_id": "123.456.789-09"})
        assert client.tax_id == "12345678909"

    def test_duplicate_tax_id(self, db_session):
        create_client({"name": "Joana Lima", "tax_id": "123.456.789-09"})

        with pytest.raises(ConflictError, match="This CPF is already registered"):
            create_client({"name": "Outra Joana", "tax_id": "12345678909"})

        assert db.session.query(Client).count() == 1

    def test_update_to_someone_elses_tax_id(self, db_session):
        create_client({"name": "Joana Lima", "tax_id": "12345678909"})
        other = create_client({"name": "Carla Dias"})

        with pytest.raises(ConflictError):
            update_client(other.id, {"tax_id": "12345678909"})

    def test_clients_without_tax_id_are_allowed(self, db_session):
        create_client({"name": "Cliente balcão"})
        create_client({"name": "Outro cliente balcão"})
        assert db.session.query(Client).count() == 2

    def test_rejects_bad_tax_id_length(self, db_session):
        with pytest.raises(ValidationError):
            create_client({"name": "Joana", "tax_id": "123"})

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            create_client({"phone": "11999990000"})

    def test_search(self, db_session):
        create_client({"name": "Joana Lima", "tax_id": "12345678909"})
        create_client({"name": "Carla Dias", "phone": "11988887777"})

        assert [c.name for c in list_clients(search="joana")] == ["Joana Lima"]
        assert [c.name for c in list_clients(search="456.789")] == ["Joana Lima"]
        assert [c.name for c in list_clients(search="98888")] == ["Carla Dias"]

    def test_client_with_sales_cannot_be_deleted(self, db_session, make_client, make_product):
        customer = make_client()
        ring = make_product()
        finalize_sale(customer.id, [{"product_id": ring.id, "quantity": 1}], "CASH", today=TODAY)

        with pytest.raises(ReferentialError):
            delete_client(customer.id)

    def test_delete_client(self, db_session, make_client):
        customer = make_client()
        delete_client(customer.id)
        assert db.session.get(Client, customer.id) is None
