# Overview: Pytest coverage for supplier payment receipts and supplier account views.

import pytest

from erp.errors import InvalidStateError, NotFoundError, ValidationError
from erp.models import SupplierLedgerEntry
from erp.services.ledger_service import LedgerEngine
from erp.services.payment_receipt_service import PaymentReceiptService
from erp.services.purchase_approval_service import PurchaseApprovalWorkflow
from erp.services.supplier_account_service import SupplierAccountService
from erp.validation import LineInput


@pytest.fixture
def approved_purchase(db_session, company_a, supplier, product_x):
    workflow = PurchaseApprovalWorkflow(db_session)
    purchase = workflow.create_purchase(
        company_id=company_a.id,
        supplier_id=supplier.id,
        lines=[LineInput(product_id=product_x.id, qty=4, unit_price_cents=2500)],
    )
    result = workflow.approve(purchase.id, [])
    return result["purchase"], result["payment_receipts"][0]


class TestPay:

    def test_pay_books_one_debit(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)

        paid = service.pay(receipt.id, notes="Bank transfer")

        assert paid.status == "PAID"
        assert paid.paid_at is not None
        assert paid.notes == "Bank transfer"
        debit = db_session.query(SupplierLedgerEntry).filter_by(direction="DEBIT").one()
        assert debit.reference_kind == "PAYMENT"
        assert debit.reference_id == receipt.id
        assert debit.amount_cents == 10000
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_paying_twice_is_noop(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.pay(receipt.id)
        service.pay(receipt.id)
        assert db_session.query(SupplierLedgerEntry).filter_by(direction="DEBIT").count() == 1
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_cannot_pay_cancelled(self, db_session, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.cancel(receipt.id)
        with pytest.raises(InvalidStateError):
            service.pay(receipt.id)

    def test_unknown_receipt(self, db_session):
        with pytest.raises(NotFoundError):
            PaymentReceiptService(db_session).pay(404)


class TestCancel:

    def test_cancel_pending_removes_credit(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        cancelled = PaymentReceiptService(db_session).cancel(receipt.id, reason="Duplicate invoice")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None
        assert "Duplicate invoice" in cancelled.notes
        assert db_session.query(SupplierLedgerEntry).count() == 0
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_cancel_paid_removes_credit_and_debit(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        other = service.create_receipt(supplier_id=supplier.id, amount_cents=700, receipt_type="RETURN")
        service.pay(receipt.id)

        service.cancel(receipt.id)

        ledger = LedgerEngine(db_session)
        assert ledger.get_current_balance(supplier.id) == 700
        assert ledger.verify_balances(supplier.id) == []
        remaining = db_session.query(SupplierLedgerEntry).all()
        assert [(e.reference_kind, e.reference_id) for e in remaining] == [("RETURN", other.id)]

    def test_cancel_twice_rejected(self, db_session, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.cancel(receipt.id)
        with pytest.raises(InvalidStateError):
            service.cancel(receipt.id)


class TestCreateAndUpdate:

    def test_return_receipt_uses_return_kind(self, db_session, supplier):
        receipt = PaymentReceiptService(db_session).create_receipt(
            supplier_id=supplier.id, amount_cents=2500, receipt_type="RETURN", description="Broken boxes",
        )
        entry = db_session.query(SupplierLedgerEntry).one()
        assert entry.reference_kind == "RETURN"
        assert entry.reference_id == receipt.id
        assert entry.direction == "CREDIT"

    def test_invalid_type_rejected(self, db_session, supplier):
        with pytest.raises(ValidationError):
            PaymentReceiptService(db_session).create_receipt(
                supplier_id=supplier.id, amount_cents=100, receipt_type="GIFT",
            )

    def test_unknown_supplier_rejected(self, db_session):
        with pytest.raises(NotFoundError):
            PaymentReceiptService(db_session).create_receipt(
                supplier_id=777, amount_cents=100, receipt_type="RETURN",
            )

    def test_update_amount_replaces_credit(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.create_receipt(supplier_id=supplier.id, amount_cents=500, receipt_type="RETURN")

        service.update_amount(receipt.id, 8000)

        ledger = LedgerEngine(db_session)
        assert ledger.get_current_balance(supplier.id) == 8500
        assert ledger.verify_balances(supplier.id) == []
        credits = ledger.find_entries(supplier.id, "PURCHASE", receipt.id)
        assert [c.amount_cents for c in credits] == [8000]

    def test_update_amount_of_paid_receipt_rejected(self, db_session, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.pay(receipt.id)
        with pytest.raises(InvalidStateError):
            service.update_amount(receipt.id, 1)


class TestListingAndStats:

    def test_filters_and_stats(self, db_session, supplier, freight_supplier, approved_purchase):
        _, main = approved_purchase
        service = PaymentReceiptService(db_session)
        service.create_receipt(supplier_id=freight_supplier.id, amount_cents=300, receipt_type="RETURN")
        service.pay(main.id)

        items, total = service.list_receipts(supplier_id=supplier.id)
        assert total == 1
        assert items[0].id == main.id

        items, total = service.list_receipts(status="PENDING")
        assert total == 1
        assert items[0].supplier_id == freight_supplier.id

        stats = service.get_stats()
        assert stats["paid_count"] == 1
        assert stats["paid_amount_cents"] == 10000
        assert stats["pending_count"] == 1
        assert stats["pending_amount_cents"] == 300
        assert stats["cancelled_count"] == 0
        assert stats["total_count"] == 2

    def test_invalid_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            PaymentReceiptService(db_session).list_receipts(status="LOST")


class TestSupplierAccounts:

    def test_summaries_flag_debt(self, db_session, supplier, freight_supplier, approved_purchase):
        summaries = {row["supplier"]["id"]: row for row in SupplierAccountService(db_session).get_all_summaries()}

        assert summaries[supplier.id]["current_balance_cents"] == 10000
        assert summaries[supplier.id]["has_debt"] is True
        assert summaries[supplier.id]["total_credit_cents"] == 10000
        assert summaries[freight_supplier.id]["current_balance_cents"] == 0
        assert summaries[freight_supplier.id]["has_debt"] is False

    def test_open_purchases_until_paid(self, db_session, supplier, approved_purchase):
        purchase, receipt = approved_purchase
        accounts = SupplierAccountService(db_session)

        [row] = accounts.get_open_purchases(supplier.id)
        assert row["id"] == purchase.id
        assert row["outstanding_cents"] == 10000

        PaymentReceiptService(db_session).pay(receipt.id)
        assert accounts.get_open_purchases(supplier.id) == []


class TestInstallments:

    def test_partial_payments_then_paid(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)

        first = service.add_installment(receipt.id, 3000, payment_method="BANK", reference_number="TRX-1")
        assert first.receipt.status == "PENDING"
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 7000

        service.add_installment(receipt.id, 7000)
        reloaded = service.get(receipt.id)
        assert reloaded.status == "PAID"
        assert reloaded.paid_at is not None
        assert reloaded.to_dict()["remaining_cents"] == 0

        debits = db_session.query(SupplierLedgerEntry).filter_by(direction="DEBIT").all()
        assert [(d.reference_kind, d.amount_cents) for d in debits] == [("INSTALLMENT", 3000), ("INSTALLMENT", 7000)]
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0
        assert LedgerEngine(db_session).verify_balances(supplier.id) == []

    def test_installment_above_remaining_rejected(self, db_session, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.add_installment(receipt.id, 6000)

        with pytest.raises(ValidationError) as excinfo:
            service.add_installment(receipt.id, 4001)
        assert excinfo.value.details == {"remaining_cents": 4000}
        assert len(service.list_installments(receipt.id)) == 1

    def test_pay_debits_only_the_outstanding_part(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.add_installment(receipt.id, 2500)

        service.pay(receipt.id)

        payment = db_session.query(SupplierLedgerEntry).filter_by(reference_kind="PAYMENT").one()
        assert payment.amount_cents == 7500
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_installment_on_paid_or_cancelled_rejected(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.pay(receipt.id)
        with pytest.raises(InvalidStateError):
            service.add_installment(receipt.id, 100)

        other = service.create_receipt(supplier_id=supplier.id, amount_cents=900, receipt_type="RETURN")
        service.cancel(other.id)
        with pytest.raises(InvalidStateError):
            service.add_installment(other.id, 100)

    def test_delete_installment_reopens_receipt(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.add_installment(receipt.id, 4000)
        last = service.add_installment(receipt.id, 6000)
        assert service.get(receipt.id).status == "PAID"

        reopened = service.delete_installment(last.id)

        assert reopened.status == "PENDING"
        assert reopened.paid_at is None
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 6000
        assert LedgerEngine(db_session).verify_balances(supplier.id) == []

        service.pay(receipt.id)
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_remaining_counts_payment_debit_after_reopen(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        first = service.add_installment(receipt.id, 4000)
        service.pay(receipt.id)
        assert service.delete_installment(first.id).status == "PENDING"

        with pytest.raises(ValidationError) as excinfo:
            service.add_installment(receipt.id, 4001)
        assert excinfo.value.details == {"remaining_cents": 4000}

        service.add_installment(receipt.id, 4000)
        assert service.get(receipt.id).status == "PAID"
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 0

    def test_cancel_removes_installment_debits(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        other = service.create_receipt(supplier_id=supplier.id, amount_cents=700, receipt_type="RETURN")
        service.add_installment(receipt.id, 1000)
        service.add_installment(receipt.id, 2000)

        service.cancel(receipt.id)

        remaining = db_session.query(SupplierLedgerEntry).all()
        assert [(e.reference_kind, e.reference_id) for e in remaining] == [("RETURN", other.id)]
        assert LedgerEngine(db_session).get_current_balance(supplier.id) == 700
        assert LedgerEngine(db_session).verify_balances(supplier.id) == []

    def test_update_amount_below_installments_rejected(self, db_session, approved_purchase):
        _, receipt = approved_purchase
        service = PaymentReceiptService(db_session)
        service.add_installment(receipt.id, 5000)
        with pytest.raises(ValidationError):
            service.update_amount(receipt.id, 5000)
        assert service.update_amount(receipt.id, 8000).amount_cents == 8000

    def test_open_purchase_outstanding_net_of_installments(self, db_session, supplier, approved_purchase):
        _, receipt = approved_purchase
        PaymentReceiptService(db_session).add_installment(receipt.id, 1500)
        [row] = SupplierAccountService(db_session).get_open_purchases(supplier.id)
        assert row["outstanding_cents"] == 8500

    def test_unknown_installment(self, db_session):
        with pytest.raises(NotFoundError):
            PaymentReceiptService(db_session).delete_installment(404)
