"""
HTTP API tests: authentication, error mapping and the main store flows end to end.
"""

import io

import pytest
from sqlalchemy.exc import OperationalError

from jewelpos.extensions import db
from jewelpos.models import Product, SaleInstallment, SessionToken, User
from jewelpos.services import checkout_service


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


PROTECTED = [
    ("GET", "/api/clients"),
    ("POST", "/api/clients"),
    ("GET", "/api/products"),
    ("POST", "/api/sales"),
    ("GET", "/api/sales"),
    ("POST", "/api/sales/1/renegotiations"),
    ("PATCH", "/api/installments/1"),
    ("GET", "/api/payables"),
    ("GET", "/api/suppliers"),
    ("PUT", "/api/notifications/settings"),
    ("POST", "/api/notifications/dispatch"),
    ("GET", "/api/dashboard"),
]


class TestAuthentication:

    def test_protected_route_requires_token(self, client, db_session):
        response = client.get("/api/clients")

        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    @pytest.mark.parametrize("method,path", PROTECTED)
    def test_every_protected_route_returns_401(self, client, db_session, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401

    def test_invalid_token(self, client, db_session):
        response = client.get("/api/clients", headers=_bearer("not-a-real-token"))

        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid or expired token"

    def test_login_me_logout(self, client, user):
        response = client.post("/api/auth/login", json={"username": "caixa", "password": "Password123!"})
        assert response.status_code == 200
        token = response.get_json()["token"]

        me = client.get("/api/auth/me", headers=_bearer(token))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "caixa"
        assert me.get_json()["mode"] == "password"

        assert client.post("/api/auth/logout", headers=_bearer(token)).status_code == 200
        assert client.get("/api/auth/me", headers=_bearer(token)).status_code == 401

    def test_login_with_email(self, client, user):
        response = client.post("/api/auth/login", json={"email": "caixa@loja.local", "password": "Password123!"})
        assert response.status_code == 200

    def test_wrong_password(self, client, user):
        response = client.post("/api/auth/login", json={"username": "caixa", "password": "nope"})

        assert response.status_code == 401
        assert db.session.query(SessionToken).count() == 0

    def test_login_requires_both_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"username": "caixa"}).status_code == 400

    def test_tokens_are_stored_hashed(self, client, user, auth_token):
        stored = db.session.query(SessionToken).filter_by(user_id=user.id).one()
        assert stored.token_hash != auth_token


class TestDemoMode:

    @pytest.fixture(autouse=True)
    def demo_mode(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "AUTH_MODE", "demo")

    def test_requests_run_as_demo_user_without_token(self, client, db_session):
        response = client.get("/api/auth/me")

        assert response.status_code == 200
        assert response.get_json()["mode"] == "demo"
        assert db.session.query(User).filter_by(is_demo=True).count() == 1

    def test_demo_user_is_reused(self, client, db_session):
        client.get("/api/clients")
        client.get("/api/clients")
        assert db.session.query(User).filter_by(is_demo=True).count() == 1

    def test_login_is_refused(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "demo", "password": "x"})
        assert response.status_code == 400


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["auth_mode"] == "password"

    def test_catalog_needs_no_token(self, client, make_product):
        make_product(description="Anel de prata")

        response = client.get("/api/catalog")

        assert response.status_code == 200
        assert [p["description"] for p in response.get_json()["products"]] == ["Anel de prata"]


class TestClientsApi:

    def test_create_and_conflict(self, client, headers):
        body = {"name": "Joana Lima", "tax_id": "123.456.789-09"}

        created = client.post("/api/clients", json=body, headers=headers)
        duplicate = client.post("/api/clients", json=body, headers=headers)

        assert created.status_code == 201
        assert created.get_json()["tax_id"] == "12345678909"
        assert duplicate.status_code == 409
        assert duplicate.get_json()["error"] == "This CPF is already registered"

    def test_validation_error(self, client, headers):
        response = client.post("/api/clients", json={"phone": "1199"}, headers=headers)
        assert response.status_code == 400

    def test_not_found(self, client, headers):
        assert client.get("/api/clients/999", headers=headers).status_code == 404


class TestSalesApi:

    def test_finalize_sale(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product(sale_price_cents=30000, stock_quantity=2)

        response = client.post(
            "/api/sales",
            json={
                "client_id": customer.id,
                "lines": [{"product_id": ring.id, "quantity": 1}],
                "payment_method": "INSTALLMENT",
                "installment_count": 3,
                "down_payment_cents": 6000,
            },
            headers=headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert [i["amount_cents"] for i in body["installments"]] == [6000, 8000, 8000, 8000]
        assert body["summary"]["total_pending_cents"] == 24000
        assert body["reconciliation"]["is_balanced"] is True
        assert db.session.get(Product, ring.id).stock_quantity == 1

    def test_insufficient_stock(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product(stock_quantity=1)

        response = client.post(
            "/api/sales",
            json={"client_id": customer.id, "lines": [{"product_id": ring.id, "quantity": 2}], "payment_method": "CASH"},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.get_json()["details"]["lines"][0]["available"] == 1

    def test_unknown_client(self, client, headers, make_product):
        ring = make_product()

        response = client.post(
            "/api/sales",
            json={"client_id": 999, "lines": [{"product_id": ring.id, "quantity": 1}], "payment_method": "CASH"},
            headers=headers,
        )

        assert response.status_code == 404

    def test_quote_when_store_is_locked(self, client, headers, make_product, monkeypatch):
        ring = make_product()

        def _locked(quantities, *, for_update):
            raise OperationalError("SELECT products", {}, Exception("database is locked"))

        monkeypatch.setattr(checkout_service, "_load_products", _locked)

        response = client.post(
            "/api/sales/quote",
            json={"lines": [{"product_id": ring.id, "quantity": 1}], "payment_method": "PIX"},
            headers=headers,
        )

        assert response.status_code == 503

    def test_renegotiate_and_receipt(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product(sale_price_cents=30000, stock_quantity=2)
        sale = client.post(
            "/api/sales",
            json={
                "client_id": customer.id,
                "lines": [{"product_id": ring.id, "quantity": 1}],
                "payment_method": "INSTALLMENT",
                "installment_count": 3,
                "down_payment_cents": 6000,
            },
            headers=headers,
        ).get_json()

        too_much = client.post(
            f"/api/sales/{sale['id']}/renegotiations",
            json={"down_payment_cents": 24001, "installment_count": 2},
            headers=headers,
        )
        assert too_much.status_code == 400

        done = client.post(
            f"/api/sales/{sale['id']}/renegotiations",
            json={"down_payment_cents": 4000, "installment_count": 2},
            headers=headers,
        )
        assert done.status_code == 201

        ledger = client.get(f"/api/sales/{sale['id']}", headers=headers).get_json()
        assert ledger["summary"]["total_pending_cents"] == 20000
        assert ledger["summary"]["total_cancelled_cents"] == 24000

        pdf = client.get(f"/api/sales/{sale['id']}/receipt.pdf", headers=headers)
        assert pdf.status_code == 200
        assert pdf.mimetype == "application/pdf"
        assert pdf.data.startswith(b"%PDF")
        assert "resumo_venda_Maria_Souza_" in pdf.headers["Content-Disposition"]

    def test_toggle_installment(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product()
        sale = client.post(
            "/api/sales",
            json={
                "client_id": customer.id,
                "lines": [{"product_id": ring.id, "quantity": 1}],
                "payment_method": "INSTALLMENT",
                "installment_count": 2,
            },
            headers=headers,
        ).get_json()
        first_id = sale["installments"][0]["id"]

        response = client.post(f"/api/installments/{first_id}/toggle-paid", headers=headers)

        assert response.status_code == 200
        assert response.get_json()["status"] == "PAID"
        assert db.session.get(SaleInstallment, first_id).paid_at is not None

    def test_list_filter_validation(self, client, headers):
        response = client.get("/api/sales?filter=BOGUS", headers=headers)
        assert response.status_code == 400


class TestProductsApi:

    def test_sold_product_delete_conflict(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product()
        client.post(
            "/api/sales",
            json={"client_id": customer.id, "lines": [{"product_id": ring.id, "quantity": 1}], "payment_method": "PIX"},
            headers=headers,
        )

        response = client.delete(f"/api/products/{ring.id}", headers=headers)

        assert response.status_code == 409

    def test_lookup_by_code(self, client, headers, make_product):
        ring = make_product()

        response = client.get(f"/api/products/code/{ring.code}", headers=headers)

        assert response.status_code == 200
        assert response.get_json()["id"] == ring.id

    def test_malformed_code(self, client, headers):
        response = client.get("/api/products/code/12ab", headers=headers)
        assert response.status_code == 400


class TestDashboardApi:

    def test_calendar_bad_month(self, client, headers):
        response = client.get("/api/dashboard/calendar?year=2026&month=13", headers=headers)
        assert response.status_code == 400

    def test_calendar_month(self, client, headers, make_client, make_product):
        customer = make_client()
        ring = make_product()
        client.post(
            "/api/sales",
            json={
                "client_id": customer.id,
                "lines": [{"product_id": ring.id, "quantity": 1}],
                "payment_method": "INSTALLMENT",
                "installment_count": 1,
            },
            headers=headers,
        )
        due = db.session.query(SaleInstallment).one().due_date

        response = client.get(f"/api/dashboard/calendar?year={due.year}&month={due.month}", headers=headers)

        assert response.status_code == 200
        assert [i["client_name"] for i in response.get_json()["installments"]] == ["Maria Souza"]


class TestPayablesApi:

    def test_create_with_products_and_toggle(self, client, headers):
        response = client.post(
            "/api/payables",
            json={
                "supplier_name": "Atacado Prata",
                "description": "Lote de brincos",
                "installment_count": 2,
                "products": [{"description": "Brinco", "category": "Brincos", "quantity": 10, "cost_cents": 1500}],
            },
            headers=headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["total_cents"] == 15000
        assert body["products"][0]["sale_price_cents"] == 3000

        inst_id = body["installments"][0]["id"]
        toggled = client.post(f"/api/payables/installments/{inst_id}/toggle-paid", headers=headers)
        assert toggled.status_code == 200

        pending = client.get("/api/payables?status=PENDING", headers=headers).get_json()["items"]
        assert [p["id"] for p in pending] == [body["id"]]

    def test_missing_supplier(self, client, headers):
        response = client.post("/api/payables", json={"description": "x", "total_cents": 100}, headers=headers)
        assert response.status_code == 400


class TestNotificationsApi:

    def test_settings_round_trip_masks_api_key(self, client, headers):
        saved = client.put(
            "/api/notifications/settings",
            json={"phone": "5511987654321", "api_key": "987654", "is_active": True},
            headers=headers,
        )
        fetched = client.get("/api/notifications/settings", headers=headers)

        assert saved.status_code == 200
        assert fetched.get_json()["settings"]["api_key"] == "****54"
        assert fetched.get_json()["settings"]["lead_days"] == [3, 2, 0]

    def test_invalid_settings(self, client, headers):
        response = client.put("/api/notifications/settings", json={"phone": "1"}, headers=headers)
        assert response.status_code == 400

    def test_preview_with_nothing_due(self, client, headers):
        body = client.get("/api/notifications/preview", headers=headers).get_json()
        assert body == {"message": None, "installment_count": 0, "total_cents": 0}

    def test_dispatch_without_settings_skips(self, client, headers):
        body = client.post("/api/notifications/dispatch", json={"force": True}, headers=headers).get_json()
        assert body["sent"] is False
        assert body["reason"] == "inactive"


class TestProductImageApi:

    def test_upload_and_serve(self, client, headers, make_product):
        ring = make_product()

        response = client.post(
            f"/api/products/{ring.id}/image",
            data={"image": (io.BytesIO(b"GIF89a fake"), "anel.gif")},
            content_type="multipart/form-data",
            headers=headers,
        )

        assert response.status_code == 200
        url = response.get_json()["image_url"]
        served = client.get(url)
        assert served.status_code == 200
        assert served.data == b"GIF89a fake"

    def test_missing_file(self, client, headers, make_product):
        ring = make_product()
        response = client.post(f"/api/products/{ring.id}/image", data={}, headers=headers)
        assert response.status_code == 400
