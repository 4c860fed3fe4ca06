# Overview: Pytest coverage for the Flask CLI command groups.

from sqlalchemy import update

from shopledger.models import Item, Organization, Shop, User


class TestSystemInit:
    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--org-code", "BOOT"])
        second = runner.invoke(args=["system", "init", "--org-code", "BOOT"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output
        org = db_session.query(Organization).filter_by(code="BOOT").one()
        assert db_session.query(Shop).filter_by(org_id=org.id).count() == 1
        assert db_session.query(User).filter_by(org_id=org.id, username="owner").count() == 1


class TestOrgAndUserCommands:
    def test_create_org_twice(self, app, db_session):
        runner = app.test_cli_runner()

        assert runner.invoke(args=["orgs", "create", "--name", "Acme", "--code", "ACME"]).exit_code == 0
        duplicate = runner.invoke(args=["orgs", "create", "--name", "Acme 2", "--code", "ACME"])

        assert duplicate.exit_code != 0
        assert "already exists" in duplicate.output

    def test_create_user_rejects_short_password(self, app, db_session, org_a):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--org-id", str(org_a.id),
            "--username", "clerk", "--email", "clerk@example.com", "--password", "short",
        ])

        assert result.exit_code != 0
        assert db_session.query(User).filter_by(username="clerk").count() == 0


class TestLedgerVerify:
    def test_consistent(self, app, db_session, widget, gadget):
        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 0
        assert "consistent" in result.output

    def test_drift_exits_nonzero(self, app, db_session, widget):
        db_session.execute(update(Item).where(Item.id == widget.id).values(current_stock=3))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 1
        assert f"item {widget.id}" in result.output
