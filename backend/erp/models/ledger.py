from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SupplierLedgerEntry(db.Model):
    """
    One signed movement against a supplier's running balance.

    Append-only by convention: `amount_cents` is always positive and the sign
    lives in `direction`. `balance_cents` is the running balance after this
    entry in insertion (id) order; it is rewritten only by a balance recompute
    following the removal of an earlier entry.
    """
    __tablename__ = "supplier_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_supplier_ledger_amount_positive"),
        db.Index("ix_supplier_ledger_supplier_id_order", "supplier_id", "id"),
        db.Index("ix_supplier_ledger_reference", "supplier_id", "reference_kind", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    direction = db.Column(db.String(8), nullable=False)  # CREDIT, DEBIT
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False)

    reference_kind = db.Column(db.String(16), nullable=False)  # PURCHASE, PAYMENT, INSTALLMENT, ADJUSTMENT, RETURN
    reference_id = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    # Business date (display order); balances follow insertion order
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("ledger_entries", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<SupplierLedgerEntry id={self.id} supplier_id={self.supplier_id} "
            f"{self.direction} {self.amount_cents} balance={self.balance_cents}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "balance_cents": self.balance_cents,
            "reference_kind": self.reference_kind,
            "reference_id": self.reference_id,
            "description": self.description,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
