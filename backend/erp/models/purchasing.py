from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Purchase(db.Model):
    """
    Purchase invoice (aggregate root with PurchaseLine rows).

    LIFECYCLE:
    - Created unapproved (status DRAFT) with its lines fixed.
    - is_approved flips to True exactly once, through the approval workflow.
      Later approval calls only append expenses (addenda).
    - A DRAFT purchase may be cancelled instead; CANCELLED is terminal.

    All amounts in cents. final_total_cents = total_cents + total_expenses_cents.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    final_total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)  # DRAFT, APPROVED, CANCELLED
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company")
    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseLine",
        backref="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "supplier_id": self.supplier_id,
            "invoice_number": self.invoice_number,
            "total_cents": self.total_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "final_total_cents": self.final_total_cents,
            "status": self.status,
            "is_approved": self.is_approved,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approved_by_user_id": self.approved_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Integer, nullable=False)  # boxes
    unit_price_cents = db.Column(db.Integer, nullable=False)
    sub_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "sub_total_cents": self.sub_total_cents,
        }


class PurchaseExpenseCategory(db.Model):
    """Freight, customs, clearance... Categories name the expense receipts."""
    __tablename__ = "purchase_expense_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseExpense(db.Model):
    """
    One allocated cost of a purchase, created during approval or an addendum.

    amount_cents is booked in the base currency; amount_foreign_cents keeps the
    original amount when the expense was entered in another currency.
    """
    __tablename__ = "purchase_expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("purchase_expense_categories.id"), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="LYD")
    exchange_rate = db.Column(db.Numeric(12, 6), nullable=False, default=1)
    amount_foreign_cents = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("expenses", lazy=True))
    category = db.relationship("PurchaseExpenseCategory")
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "supplier_id": self.supplier_id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "amount_foreign_cents": self.amount_foreign_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class ProductCostHistory(db.Model):
    """
    Immutable landed-cost snapshot, one per purchase line at first approval.

    total_cost_per_unit_cents = purchase_price_cents + expense_per_unit_cents
    """
    __tablename__ = "product_cost_history"
    __table_args__ = (
        db.Index("ix_cost_history_product_company", "product_id", "company_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False)
    expense_per_unit_cents = db.Column(db.Integer, nullable=False)
    total_cost_per_unit_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "purchase_id": self.purchase_id,
            "company_id": self.company_id,
            "purchase_price_cents": self.purchase_price_cents,
            "expense_per_unit_cents": self.expense_per_unit_cents,
            "total_cost_per_unit_cents": self.total_cost_per_unit_cents,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPaymentReceipt(db.Model):
    """
    Amount payable to a supplier.

    type: MAIN_PURCHASE, EXPENSE, RETURN
    status: PENDING -> PAID | CANCELLED

    Each receipt has a CREDIT ledger entry referencing it (reference_id = receipt id);
    paying adds a DEBIT for whatever installments have not covered yet,
    cancelling removes every entry of the receipt and of its installments.
    """
    __tablename__ = "supplier_payment_receipts"
    __table_args__ = (
        db.Index("ix_payment_receipts_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    purchase_expense_id = db.Column(db.Integer, db.ForeignKey("purchase_expenses.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    category_name = db.Column(db.String(120), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier")
    purchase = db.relationship("Purchase")
    installments = db.relationship(
        "SupplierPaymentInstallment",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="SupplierPaymentInstallment.id",
    )

    @property
    def installments_paid_cents(self) -> int:
        return sum(installment.amount_cents for installment in self.installments)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_id": self.purchase_id,
            "purchase_expense_id": self.purchase_expense_id,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "status": self.status,
            "category_name": self.category_name,
            "description": self.description,
            "notes": self.notes,
            "installments_paid_cents": self.installments_paid_cents,
            "remaining_cents": 0 if self.status == "PAID" else max(self.amount_cents - self.installments_paid_cents, 0),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPaymentInstallment(db.Model):
    """
    Partial payment of a receipt.

    Each installment has one DEBIT ledger entry (reference_kind INSTALLMENT,
    reference_id = installment id). The receipt turns PAID once its installments
    cover the amount.
    """
    __tablename__ = "supplier_payment_installments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payment_receipt_id = db.Column(
        db.Integer, db.ForeignKey("supplier_payment_receipts.id"), nullable=False, index=True
    )
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    receipt = db.relationship("SupplierPaymentReceipt", back_populates="installments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_receipt_id": self.payment_receipt_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }
