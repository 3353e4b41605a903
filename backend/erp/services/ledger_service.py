# Overview: Supplier running ledger; append, read, remove-by-reference and reconcile.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, update

from ..errors import InconsistentStateError, NotFoundError, ValidationError
from ..models import Supplier, SupplierLedgerEntry
from ..time_utils import utcnow
from .concurrency import run_unit_of_work
"""
Supplier Ledger Invariants (authoritative)

- One running balance per supplier, stored on every entry (balance_cents).
- Canonical order is insertion order (entry id). For consecutive entries:
    balance(n) = balance(n-1) + amount  if CREDIT
    balance(n) = balance(n-1) - amount  if DEBIT
  with balance(-1) = 0.
- amount_cents is always > 0; the sign is carried by direction.
- CREDIT: the supplier is owed more (purchase, expense, return-to-supplier).
  DEBIT: the obligation is reduced (payment made: PAYMENT references a receipt,
  INSTALLMENT references one partial payment of a receipt).
- Appends for one supplier are serialized: every ledger write first bumps
  suppliers.ledger_version, which holds the row lock (PostgreSQL) or the
  database write lock (SQLite) until the enclosing transaction ends. The
  previous balance is only read after that.
- Entries are never edited. Removing entries (receipt cancelled/edited) recomputes
  the stored balance of every later entry of that supplier in the same transaction.
- transaction_date is business time and only drives display order.
"""

CREDIT = "CREDIT"
DEBIT = "DEBIT"
DIRECTIONS = (CREDIT, DEBIT)

REF_PURCHASE = "PURCHASE"
REF_PAYMENT = "PAYMENT"
REF_INSTALLMENT = "INSTALLMENT"
REF_ADJUSTMENT = "ADJUSTMENT"
REF_RETURN = "RETURN"
REFERENCE_KINDS = (REF_PURCHASE, REF_PAYMENT, REF_INSTALLMENT, REF_ADJUSTMENT, REF_RETURN)


def apply_movement(balance_cents: int, direction: str, amount_cents: int) -> int:
    if direction == CREDIT:
        return balance_cents + amount_cents
    return balance_cents - amount_cents


class LedgerEngine:
    """Per-supplier running ledger bound to one SQLAlchemy session (unit of work)."""

    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------ reads

    def get_supplier(self, supplier_id: int) -> Supplier:
        supplier = self.session.get(Supplier, supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    def _lock_supplier(self, supplier_id: int) -> None:
        """
        Take the supplier's ledger write lock for the rest of the transaction.

        SELECT ... FOR UPDATE is ignored by SQLite, and pysqlite only opens the
        transaction at the first write, so the lock is a write to the supplier row.
        """
        result = self.session.execute(
            update(Supplier)
            .where(Supplier.id == supplier_id)
            .values(ledger_version=Supplier.ledger_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Supplier {supplier_id} not found")

    def _entries_in_order(self, supplier_id: int, *, after_id: int | None = None):
        query = self.session.query(SupplierLedgerEntry).filter(
            SupplierLedgerEntry.supplier_id == supplier_id
        )
        if after_id is not None:
            query = query.filter(SupplierLedgerEntry.id > after_id)
        return query.order_by(SupplierLedgerEntry.id.asc()).all()

    def _last_entry(self, supplier_id: int, *, before_id: int | None = None) -> SupplierLedgerEntry | None:
        query = self.session.query(SupplierLedgerEntry).filter(
            SupplierLedgerEntry.supplier_id == supplier_id
        )
        if before_id is not None:
            query = query.filter(SupplierLedgerEntry.id < before_id)
        return query.order_by(SupplierLedgerEntry.id.desc()).first()

    def get_current_balance(self, supplier_id: int) -> int:
        """Balance after the most recently inserted entry, or 0."""
        self.get_supplier(supplier_id)
        last = self._last_entry(supplier_id)
        return last.balance_cents if last else 0

    def get_account(self, supplier_id: int) -> dict:
        """
        Supplier header, current balance, per-direction totals and all entries.

        Entries are listed by business date (newest first); the balance shown on
        each entry follows insertion order, so the two orders can differ when
        entries are back-dated.
        """
        supplier = self.get_supplier(supplier_id)

        totals = dict(
            self.session.query(
                SupplierLedgerEntry.direction,
                func.coalesce(func.sum(SupplierLedgerEntry.amount_cents), 0),
            )
            .filter(SupplierLedgerEntry.supplier_id == supplier_id)
            .group_by(SupplierLedgerEntry.direction)
            .all()
        )

        entries = (
            self.session.query(SupplierLedgerEntry)
            .filter(SupplierLedgerEntry.supplier_id == supplier_id)
            .order_by(
                SupplierLedgerEntry.transaction_date.desc(),
                SupplierLedgerEntry.id.desc(),
            )
            .all()
        )

        last = self._last_entry(supplier_id)
        return {
            "supplier": supplier.to_dict(),
            "current_balance_cents": last.balance_cents if last else 0,
            "total_credit_cents": int(totals.get(CREDIT, 0) or 0),
            "total_debit_cents": int(totals.get(DEBIT, 0) or 0),
            "entries": [entry.to_dict() for entry in entries],
        }

    def find_entries(self, supplier_id: int, reference_kind: str, reference_id: int) -> list[SupplierLedgerEntry]:
        return (
            self.session.query(SupplierLedgerEntry)
            .filter_by(supplier_id=supplier_id, reference_kind=reference_kind, reference_id=reference_id)
            .order_by(SupplierLedgerEntry.id.asc())
            .all()
        )

    # ----------------------------------------------------------------- writes

    def append_entry(
        self,
        *,
        supplier_id: int,
        direction: str,
        amount_cents: int,
        reference_kind: str,
        reference_id: int,
        description: str | None = None,
        transaction_date: datetime | None = None,
        commit: bool = True,
    ) -> SupplierLedgerEntry:
        """
        Append one entry. Previous balance is the balance of the last inserted
        entry of the supplier (0 if none).

        commit=False joins the caller's transaction (used by the workflows so the
        entry commits or rolls back with the rest of their writes).
        """
        if direction not in DIRECTIONS:
            raise ValidationError(f"Invalid direction. Must be one of: {', '.join(DIRECTIONS)}")
        if reference_kind not in REFERENCE_KINDS:
            raise ValidationError(f"Invalid reference_kind. Must be one of: {', '.join(REFERENCE_KINDS)}")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("amount_cents must be a positive integer")

        def _op():
            self._lock_supplier(supplier_id)

            last = self._last_entry(supplier_id)
            previous = last.balance_cents if last else 0

            entry = SupplierLedgerEntry(
                supplier_id=supplier_id,
                direction=direction,
                amount_cents=amount_cents,
                balance_cents=apply_movement(previous, direction, amount_cents),
                reference_kind=reference_kind,
                reference_id=reference_id,
                description=description,
                transaction_date=transaction_date or utcnow(),
            )
            self.session.add(entry)
            self.session.flush()
            return entry

        return run_unit_of_work(self.session, _op, commit=commit)

    def remove_entries_by_reference(
        self,
        supplier_id: int,
        reference_kind: str,
        reference_id: int,
        *,
        commit: bool = True,
    ) -> int:
        """Delete matching entries and recompute every later balance. Returns the number removed."""
        return self.remove_entries_for_references(
            supplier_id, [(reference_kind, reference_id)], commit=commit
        )

    def remove_entries_for_references(
        self,
        supplier_id: int,
        references: list[tuple[str, int]],
        *,
        commit: bool = True,
    ) -> int:
        def _op():
            self._lock_supplier(supplier_id)

            doomed = []
            for reference_kind, reference_id in references:
                doomed.extend(self.find_entries(supplier_id, reference_kind, reference_id))
            if not doomed:
                return 0

            first_removed_id = min(entry.id for entry in doomed)
            for entry in doomed:
                self.session.delete(entry)
            self.session.flush()

            self._recompute_after(supplier_id, first_removed_id)
            return len(doomed)

        return run_unit_of_work(self.session, _op, commit=commit)

    def _recompute_after(self, supplier_id: int, entry_id: int) -> int:
        """Rewrite stored balances of all entries inserted after position `entry_id`."""
        anchor = self._last_entry(supplier_id, before_id=entry_id)
        balance = anchor.balance_cents if anchor else 0
        after_id = anchor.id if anchor else None

        changed = 0
        for entry in self._entries_in_order(supplier_id, after_id=after_id):
            balance = apply_movement(balance, entry.direction, entry.amount_cents)
            if entry.balance_cents != balance:
                entry.balance_cents = balance
                changed += 1
        self.session.flush()
        return changed

    # ---------------------------------------------------------- reconciliation

    def verify_balances(self, supplier_id: int) -> list[dict]:
        """
        Compare each stored balance with the fold over insertion order.

        Returns one item per drifting entry (empty when consistent).
        """
        self.get_supplier(supplier_id)

        drift = []
        expected = 0
        for entry in self._entries_in_order(supplier_id):
            expected = apply_movement(expected, entry.direction, entry.amount_cents)
            if entry.balance_cents != expected:
                drift.append({
                    "entry_id": entry.id,
                    "stored_balance_cents": entry.balance_cents,
                    "expected_balance_cents": expected,
                })
        return drift

    def assert_consistent(self, supplier_id: int) -> None:
        drift = self.verify_balances(supplier_id)
        if drift:
            raise InconsistentStateError(
                f"Supplier {supplier_id} ledger has {len(drift)} drifting balance(s)",
                details={"supplier_id": supplier_id, "drift": drift},
            )

    def recompute_balances(self, supplier_id: int, *, commit: bool = True) -> int:
        """Rewrite every stored balance of the supplier. Returns the number of entries changed."""
        def _op():
            self._lock_supplier(supplier_id)
            first = (
                self.session.query(func.min(SupplierLedgerEntry.id))
                .filter(SupplierLedgerEntry.supplier_id == supplier_id)
                .scalar()
            )
            if first is None:
                return 0
            return self._recompute_after(supplier_id, first)

        return run_unit_of_work(self.session, _op, commit=commit)
