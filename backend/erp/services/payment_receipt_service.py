# Overview: Supplier payment receipts; issue, pay, cancel and re-amount with their ledger entries.

"""
Supplier Payment Receipt Service

WHY: A receipt is the payable side of a purchase (or an expense, or a manual
return). Its ledger footprint must always match its state.

LIFECYCLE:
1. PENDING: Issued with one CREDIT ledger entry (reference_id = receipt id).
   Installments may pay part of it, each with its own DEBIT (INSTALLMENT).
2. PAID: Reached when installments cover the amount, or by pay(), which books
   one DEBIT (PAYMENT) for whatever the installments left outstanding.
3. CANCELLED: Every entry referencing the receipt is removed and later
   balances are recomputed.

Paying twice is a no-op. Cancelling twice is an error.
"""

from __future__ import annotations

from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import SupplierPaymentInstallment, SupplierPaymentReceipt
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_unit_of_work
from .ledger_service import (
    CREDIT,
    DEBIT,
    LedgerEngine,
    REF_INSTALLMENT,
    REF_PAYMENT,
    REF_PURCHASE,
    REF_RETURN,
)


TYPE_MAIN_PURCHASE = "MAIN_PURCHASE"
TYPE_EXPENSE = "EXPENSE"
TYPE_RETURN = "RETURN"
RECEIPT_TYPES = (TYPE_MAIN_PURCHASE, TYPE_EXPENSE, TYPE_RETURN)

STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"
RECEIPT_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_CANCELLED)


def credit_reference_kind(receipt_type: str) -> str:
    return REF_RETURN if receipt_type == TYPE_RETURN else REF_PURCHASE


class PaymentReceiptService:
    def __init__(self, session, ledger: LedgerEngine | None = None):
        self.session = session
        self.ledger = ledger or LedgerEngine(session)

    def get(self, receipt_id: int, *, lock: bool = False) -> SupplierPaymentReceipt:
        query = self.session.query(SupplierPaymentReceipt).filter_by(id=receipt_id)
        if lock:
            query = lock_for_update(query)
        receipt = query.first()
        if receipt is None:
            raise NotFoundError(f"Payment receipt {receipt_id} not found")
        return receipt

    def create_receipt(
        self,
        *,
        supplier_id: int,
        amount_cents: int,
        receipt_type: str,
        purchase_id: int | None = None,
        purchase_expense_id: int | None = None,
        category_name: str | None = None,
        description: str | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> SupplierPaymentReceipt:
        """
        Issue a PENDING receipt and its CREDIT ledger entry.

        RETURN receipts are booked with reference_kind RETURN, every other type
        with PURCHASE.
        """
        if receipt_type not in RECEIPT_TYPES:
            raise ValidationError(f"Invalid type. Must be one of: {', '.join(RECEIPT_TYPES)}")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("amount_cents must be a positive integer")

        def _op():
            self.ledger.get_supplier(supplier_id)
            receipt = SupplierPaymentReceipt(
                supplier_id=supplier_id,
                purchase_id=purchase_id,
                purchase_expense_id=purchase_expense_id,
                amount_cents=amount_cents,
                type=receipt_type,
                status=STATUS_PENDING,
                category_name=category_name,
                description=description,
                notes=notes,
            )
            self.session.add(receipt)
            self.session.flush()

            self.ledger.append_entry(
                supplier_id=supplier_id,
                direction=CREDIT,
                amount_cents=amount_cents,
                reference_kind=credit_reference_kind(receipt_type),
                reference_id=receipt.id,
                description=description,
                commit=False,
            )
            return receipt

        return run_unit_of_work(self.session, _op, commit=commit)

    def pay(self, receipt_id: int, *, notes: str | None = None, commit: bool = True) -> SupplierPaymentReceipt:
        def _op():
            receipt = self.get(receipt_id, lock=True)
            if receipt.status == STATUS_PAID:
                return receipt
            if receipt.status == STATUS_CANCELLED:
                raise InvalidStateError("Cannot pay a cancelled receipt")

            receipt.status = STATUS_PAID
            receipt.paid_at = utcnow()
            if notes:
                receipt.notes = notes

            outstanding = receipt.amount_cents - self._settled_cents(receipt)
            if outstanding > 0:
                self.ledger.append_entry(
                    supplier_id=receipt.supplier_id,
                    direction=DEBIT,
                    amount_cents=outstanding,
                    reference_kind=REF_PAYMENT,
                    reference_id=receipt.id,
                    description=f"Payment of receipt #{receipt.id}"
                    + (f" - {receipt.description}" if receipt.description else ""),
                    commit=False,
                )
            self.session.flush()
            return receipt

        return run_unit_of_work(self.session, _op, commit=commit)

    def cancel(self, receipt_id: int, *, reason: str | None = None, commit: bool = True) -> SupplierPaymentReceipt:
        def _op():
            receipt = self.get(receipt_id, lock=True)
            if receipt.status == STATUS_CANCELLED:
                raise InvalidStateError("Receipt is already cancelled")

            self._remove_ledger_footprint(receipt)

            receipt.status = STATUS_CANCELLED
            receipt.cancelled_at = utcnow()
            if reason:
                receipt.notes = f"{receipt.notes}\n{reason}" if receipt.notes else reason
            self.session.flush()
            return receipt

        return run_unit_of_work(self.session, _op, commit=commit)

    def update_amount(self, receipt_id: int, amount_cents: int, *, commit: bool = True) -> SupplierPaymentReceipt:
        """Change a PENDING receipt's amount; its CREDIT entry is replaced by one for the new amount."""
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("amount_cents must be a positive integer")

        def _op():
            receipt = self.get(receipt_id, lock=True)
            if receipt.status != STATUS_PENDING:
                raise InvalidStateError(f"Only PENDING receipts can be edited (status is {receipt.status})")
            if receipt.amount_cents == amount_cents:
                return receipt
            paid = receipt.installments_paid_cents
            if amount_cents <= paid:
                raise ValidationError(
                    f"amount_cents must exceed the {paid} already paid in installments",
                    details={"installments_paid_cents": paid},
                )

            self.ledger.remove_entries_by_reference(
                receipt.supplier_id, credit_reference_kind(receipt.type), receipt.id, commit=False
            )
            receipt.amount_cents = amount_cents
            self.ledger.append_entry(
                supplier_id=receipt.supplier_id,
                direction=CREDIT,
                amount_cents=amount_cents,
                reference_kind=credit_reference_kind(receipt.type),
                reference_id=receipt.id,
                description=receipt.description,
                commit=False,
            )
            self.session.flush()
            return receipt

        return run_unit_of_work(self.session, _op, commit=commit)

    def remove_receipts(self, receipts: list[SupplierPaymentReceipt]) -> None:
        """Delete receipts with their ledger entries. Joins the caller's transaction."""
        for receipt in receipts:
            self._remove_ledger_footprint(receipt)
            self.session.delete(receipt)
        self.session.flush()

    def _remove_ledger_footprint(self, receipt: SupplierPaymentReceipt) -> int:
        references = [(REF_PURCHASE, receipt.id), (REF_RETURN, receipt.id), (REF_PAYMENT, receipt.id)]
        references.extend((REF_INSTALLMENT, installment.id) for installment in receipt.installments)
        return self.ledger.remove_entries_for_references(receipt.supplier_id, references, commit=False)

    def _settled_cents(self, receipt: SupplierPaymentReceipt) -> int:
        """Amount already debited for the receipt: installments plus any PAYMENT entry."""
        paid = sum(
            entry.amount_cents
            for entry in self.ledger.find_entries(receipt.supplier_id, REF_PAYMENT, receipt.id)
        )
        return receipt.installments_paid_cents + paid

    # ------------------------------------------------------------ installments

    def add_installment(
        self,
        receipt_id: int,
        amount_cents: int,
        *,
        payment_method: str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> SupplierPaymentInstallment:
        """
        Record a partial payment and its DEBIT entry.

        The amount may not exceed what is left of the receipt. The receipt turns
        PAID when its installments cover the full amount.
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("amount_cents must be a positive integer")

        def _op():
            receipt = self.get(receipt_id, lock=True)
            if receipt.status == STATUS_CANCELLED:
                raise InvalidStateError("Cannot add an installment to a cancelled receipt")
            if receipt.status == STATUS_PAID:
                raise InvalidStateError("Receipt is already paid")

            remaining = receipt.amount_cents - self._settled_cents(receipt)
            if amount_cents > remaining:
                raise ValidationError(
                    f"Installment amount {amount_cents} exceeds the remaining {remaining}",
                    details={"remaining_cents": remaining},
                )

            installment = SupplierPaymentInstallment(
                amount_cents=amount_cents,
                payment_method=payment_method,
                reference_number=reference_number,
                notes=notes,
                paid_at=utcnow(),
            )
            receipt.installments.append(installment)
            self.session.flush()

            self.ledger.append_entry(
                supplier_id=receipt.supplier_id,
                direction=DEBIT,
                amount_cents=amount_cents,
                reference_kind=REF_INSTALLMENT,
                reference_id=installment.id,
                description=f"Installment #{installment.id} of receipt #{receipt.id}",
                commit=False,
            )

            if amount_cents == remaining:
                receipt.status = STATUS_PAID
                receipt.paid_at = installment.paid_at
            self.session.flush()
            return installment

        return run_unit_of_work(self.session, _op, commit=commit)

    def list_installments(self, receipt_id: int) -> list[SupplierPaymentInstallment]:
        self.get(receipt_id)
        return (
            self.session.query(SupplierPaymentInstallment)
            .filter_by(payment_receipt_id=receipt_id)
            .order_by(SupplierPaymentInstallment.paid_at.desc(), SupplierPaymentInstallment.id.desc())
            .all()
        )

    def delete_installment(self, installment_id: int, *, commit: bool = True) -> SupplierPaymentReceipt:
        """Remove an installment and its DEBIT, then re-derive PAID/PENDING for the receipt."""
        def _op():
            installment = self.session.get(SupplierPaymentInstallment, installment_id)
            if installment is None:
                raise NotFoundError(f"Installment {installment_id} not found")

            receipt = self.get(installment.payment_receipt_id, lock=True)
            if receipt.status == STATUS_CANCELLED:
                raise InvalidStateError("Cannot modify a cancelled receipt")

            self.ledger.remove_entries_by_reference(
                receipt.supplier_id, REF_INSTALLMENT, installment.id, commit=False
            )
            receipt.installments.remove(installment)
            self.session.flush()

            if self._settled_cents(receipt) >= receipt.amount_cents:
                receipt.status = STATUS_PAID
                receipt.paid_at = receipt.paid_at or utcnow()
            else:
                receipt.status = STATUS_PENDING
                receipt.paid_at = None
            self.session.flush()
            return receipt

        return run_unit_of_work(self.session, _op, commit=commit)

    def list_receipts(
        self,
        *,
        supplier_id: int | None = None,
        purchase_id: int | None = None,
        status: str | None = None,
        receipt_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[SupplierPaymentReceipt], int]:
        query = self.session.query(SupplierPaymentReceipt)
        if supplier_id is not None:
            query = query.filter(SupplierPaymentReceipt.supplier_id == supplier_id)
        if purchase_id is not None:
            query = query.filter(SupplierPaymentReceipt.purchase_id == purchase_id)
        if status:
            if status not in RECEIPT_STATUSES:
                raise ValidationError(f"Invalid status. Must be one of: {', '.join(RECEIPT_STATUSES)}")
            query = query.filter(SupplierPaymentReceipt.status == status)
        if receipt_type:
            if receipt_type not in RECEIPT_TYPES:
                raise ValidationError(f"Invalid type. Must be one of: {', '.join(RECEIPT_TYPES)}")
            query = query.filter(SupplierPaymentReceipt.type == receipt_type)

        total = query.count()
        items = (
            query.order_by(SupplierPaymentReceipt.created_at.desc(), SupplierPaymentReceipt.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def get_stats(self, *, supplier_id: int | None = None) -> dict:
        query = self.session.query(
            SupplierPaymentReceipt.status,
            func.count(SupplierPaymentReceipt.id),
            func.coalesce(func.sum(SupplierPaymentReceipt.amount_cents), 0),
        )
        if supplier_id is not None:
            query = query.filter(SupplierPaymentReceipt.supplier_id == supplier_id)
        rows = {status: (count, amount) for status, count, amount in query.group_by(SupplierPaymentReceipt.status)}

        stats = {"total_count": 0, "total_amount_cents": 0}
        for status in RECEIPT_STATUSES:
            count, amount = rows.get(status, (0, 0))
            key = status.lower()
            stats[f"{key}_count"] = int(count)
            stats[f"{key}_amount_cents"] = int(amount)
            stats["total_count"] += int(count)
            stats["total_amount_cents"] += int(amount)
        return stats
