# Overview: Pytest coverage for ledger maintenance CLI commands.

from erp.models import SupplierLedgerEntry
from erp.services.ledger_service import CREDIT, LedgerEngine


def _seed(db_session, supplier):
    engine = LedgerEngine(db_session)
    for ref in (1, 2):
        engine.append_entry(supplier_id=supplier.id, direction=CREDIT, amount_cents=250,
                            reference_kind="PURCHASE", reference_id=ref)


class TestLedgerCommands:

    def test_verify_consistent(self, app, db_session, supplier):
        _seed(db_session, supplier)
        result = app.test_cli_runner().invoke(args=['ledger', 'verify', '--supplier-id', str(supplier.id)])
        assert result.exit_code == 0
        assert "consistent" in result.output

    def test_verify_reports_drift_then_recompute_fixes_it(self, app, db_session, supplier):
        _seed(db_session, supplier)
        last = db_session.query(SupplierLedgerEntry).order_by(SupplierLedgerEntry.id.desc()).first()
        last.balance_cents = 1
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=['ledger', 'verify', '--supplier-id', str(supplier.id)])
        assert result.exit_code == 1
        assert "stored=1 expected=500" in result.output

        result = runner.invoke(args=['ledger', 'recompute', '--supplier-id', str(supplier.id)])
        assert result.exit_code == 0
        assert LedgerEngine(db_session).verify_balances(supplier.id) == []

    def test_unknown_supplier(self, app, db_session):
        result = app.test_cli_runner().invoke(args=['ledger', 'verify', '--supplier-id', '424242'])
        assert result.exit_code != 0
        assert "not found" in result.output
