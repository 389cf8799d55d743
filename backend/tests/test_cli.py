"""
CLI tests for the system, users and reminders command groups.
"""

from datetime import date

import pytest

from jewelpos.extensions import db
from jewelpos.models import User
from jewelpos.services.checkout_service import finalize_sale
from jewelpos.services.notification_service import save_settings


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemInit:

    def test_creates_first_user(self, runner, db_session):
        result = runner.invoke(args=["system", "init", "--admin-username", "dona", "--admin-email", "dona@loja.local"])

        assert result.exit_code == 0
        assert "PASS Created user: dona" in result.output
        assert db.session.query(User).filter_by(username="dona").count() == 1

    def test_is_idempotent(self, runner, db_session):
        runner.invoke(args=["system", "init"])
        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0
        assert "WARN  User 'admin' already exists" in result.output
        assert db.session.query(User).count() == 1


class TestUsers:

    def test_create(self, runner, db_session):
        result = runner.invoke(args=[
            "users", "create", "--username", "vendedora", "--email", "v@loja.local", "--password", "Senha@2026",
        ])

        assert result.exit_code == 0
        assert db.session.query(User).filter_by(username="vendedora").one().email == "v@loja.local"

    def test_weak_password(self, runner, db_session):
        result = runner.invoke(args=[
            "users", "create", "--username", "vendedora", "--email", "v@loja.local", "--password", "fraca",
        ])

        assert result.exit_code == 1
        assert "FAIL Password validation failed" in result.output
        assert db.session.query(User).count() == 0

    def test_duplicate_username(self, runner, user):
        result = runner.invoke(args=[
            "users", "create", "--username", "caixa", "--email", "outro@loja.local", "--password", "Senha@2026",
        ])

        assert result.exit_code == 1

    def test_list(self, runner, user):
        result = runner.invoke(args=["users", "list"])
        assert "caixa@loja.local" in result.output


class TestReminders:

    def test_dispatch_skips_when_not_configured(self, runner, db_session):
        result = runner.invoke(args=["reminders", "dispatch", "--date", "2026-03-10"])

        assert result.exit_code == 0
        assert "SKIP inactive" in result.output

    def test_preview(self, runner, db_session, make_client, make_product):
        save_settings({"phone": "5511987654321", "api_key": "123456", "lead_days": [0]})
        customer = make_client(name="Maria Souza")
        ring = make_product(sale_price_cents=8000)
        finalize_sale(
            customer.id,
            [{"product_id": ring.id, "quantity": 1}],
            "INSTALLMENT",
            installment_count=1,
            today=date(2026, 3, 10),
        )

        result = runner.invoke(args=["reminders", "preview", "--date", "2026-03-10"])

        assert result.exit_code == 0
        assert "• Maria Souza - R$ 80.00" in result.output

    def test_preview_with_nothing_due(self, runner, db_session):
        result = runner.invoke(args=["reminders", "preview", "--date", "2026-03-10"])
        assert "Nothing due" in result.output

    def test_bad_date(self, runner, db_session):
        result = runner.invoke(args=["reminders", "preview", "--date", "10/03/2026"])

        assert result.exit_code == 2
        assert "--date" in result.output
