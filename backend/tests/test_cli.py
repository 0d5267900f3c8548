# Overview: Pytest coverage for the flask CLI command groups.

from campus_store.services import audit_log_service, transfer_service


class TestStockCommands:

    def test_report_lists_products_and_sets(self, runner, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=7)
        make_product(name="Stapler", stock=40)
        make_set("Pen Pair", [(pen, 2)])

        result = runner.invoke(args=["stock", "report"])

        assert result.exit_code == 0
        assert "Pen Pair" in result.output
        assert "Stapler" in result.output

    def test_report_low_filter(self, runner, db_session, make_product):
        make_product(name="Pen", stock=2)
        make_product(name="Stapler", stock=40)

        result = runner.invoke(args=["stock", "report", "--low", "5"])

        assert result.exit_code == 0
        assert "Pen" in result.output
        assert "Stapler" not in result.output

    def test_report_empty(self, runner, db_session):
        result = runner.invoke(args=["stock", "report"])
        assert "No products found." in result.output


class TestPendingCommands:

    def test_audit_pending(self, runner, db_session, make_product):
        product = make_product(name="Ruler", stock=5)
        audit_log_service.create_audit_log(product_id=product.id, before_quantity=5, after_quantity=3)
        db_session.commit()

        result = runner.invoke(args=["audit", "pending"])

        assert result.exit_code == 0
        assert "Ruler" in result.output

    def test_transfers_pending(self, runner, db_session, branch, make_product):
        product = make_product(stock=5)
        transfer_service.create_transfer(items=[{"product_id": product.id, "quantity": 2}], to_branch_id=branch.id)
        db_session.commit()

        result = runner.invoke(args=["transfers", "pending"])

        assert result.exit_code == 0
        assert "North Campus" in result.output

    def test_nothing_pending(self, runner, db_session):
        assert "No pending audit logs." in runner.invoke(args=["audit", "pending"]).output
        assert "No pending transfers." in runner.invoke(args=["transfers", "pending"]).output


class TestSystemCommands:

    def test_init_db_is_idempotent(self, runner, db_session):
        result = runner.invoke(args=["system", "init-db"])
        assert result.exit_code == 0
        assert "PASS" in result.output
