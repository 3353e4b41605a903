# Overview: Read-side supplier account views built on the ledger.

from __future__ import annotations

from sqlalchemy import func

from ..models import Purchase, Supplier, SupplierLedgerEntry, SupplierPaymentReceipt
from .ledger_service import CREDIT, DEBIT, LedgerEngine
from .payment_receipt_service import STATUS_PENDING, TYPE_MAIN_PURCHASE


class SupplierAccountService:
    def __init__(self, session, ledger: LedgerEngine | None = None):
        self.session = session
        self.ledger = ledger or LedgerEngine(session)

    def get_all_summaries(self) -> list[dict]:
        """
        One row per supplier: current balance (last inserted entry), totals per
        direction and has_debt (balance > 0).
        """
        last_ids = (
            self.session.query(
                SupplierLedgerEntry.supplier_id.label("supplier_id"),
                func.max(SupplierLedgerEntry.id).label("last_id"),
            )
            .group_by(SupplierLedgerEntry.supplier_id)
            .subquery()
        )
        balances = dict(
            self.session.query(SupplierLedgerEntry.supplier_id, SupplierLedgerEntry.balance_cents)
            .join(last_ids, SupplierLedgerEntry.id == last_ids.c.last_id)
            .all()
        )

        totals: dict[int, dict[str, int]] = {}
        rows = (
            self.session.query(
                SupplierLedgerEntry.supplier_id,
                SupplierLedgerEntry.direction,
                func.coalesce(func.sum(SupplierLedgerEntry.amount_cents), 0),
            )
            .group_by(SupplierLedgerEntry.supplier_id, SupplierLedgerEntry.direction)
            .all()
        )
        for supplier_id, direction, amount in rows:
            totals.setdefault(supplier_id, {})[direction] = int(amount)

        summaries = []
        for supplier in self.session.query(Supplier).order_by(Supplier.name.asc(), Supplier.id.asc()).all():
            balance = int(balances.get(supplier.id, 0))
            supplier_totals = totals.get(supplier.id, {})
            summaries.append({
                "supplier": supplier.to_dict(),
                "current_balance_cents": balance,
                "total_credit_cents": supplier_totals.get(CREDIT, 0),
                "total_debit_cents": supplier_totals.get(DEBIT, 0),
                "has_debt": balance > 0,
            })
        return summaries

    def get_open_purchases(self, supplier_id: int) -> list[dict]:
        """Approved purchases of the supplier whose MAIN_PURCHASE receipt is still pending."""
        self.ledger.get_supplier(supplier_id)

        rows = (
            self.session.query(Purchase, SupplierPaymentReceipt)
            .join(SupplierPaymentReceipt, SupplierPaymentReceipt.purchase_id == Purchase.id)
            .filter(
                Purchase.supplier_id == supplier_id,
                Purchase.is_approved.is_(True),
                SupplierPaymentReceipt.supplier_id == supplier_id,
                SupplierPaymentReceipt.type == TYPE_MAIN_PURCHASE,
                SupplierPaymentReceipt.status == STATUS_PENDING,
            )
            .order_by(Purchase.created_at.desc(), Purchase.id.desc())
            .all()
        )
        return [
            {
                **purchase.to_dict(),
                "receipt_id": receipt.id,
                "outstanding_cents": receipt.amount_cents - receipt.installments_paid_cents,
            }
            for purchase, receipt in rows
        ]
