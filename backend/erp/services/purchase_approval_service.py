# Overview: Purchase creation, approval (landed cost, stock, payables) and expense addenda.

"""
Purchase Approval Workflow

WHY: Approving a purchase is the moment goods enter stock at a landed cost and
the supplier becomes owed money. All of it must happen together or not at all.

LIFECYCLE:
1. DRAFT: Created with its lines (create_purchase). No stock, no payables.
2. APPROVED (first approval, exactly once):
   - expenses persisted; total_expenses = sum, final_total = total + total_expenses
   - one ProductCostHistory per line with a uniform expense-per-unit share
   - stock += qty per line
   - MAIN_PURCHASE receipt for the purchase supplier, EXPENSE receipt for every
     expense naming a supplier, a ledger CREDIT for each receipt
3. ADDENDUM (any later approve call): new expenses only. Totals, receipts and
   ledger move; stock and cost history never do.

A DRAFT purchase can be cancelled (cancel_purchase); a cancelled purchase is
never approved.

The whole call is one unit of work: receipts and ledger entries commit with
the approval itself.
"""

from __future__ import annotations

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import (
    Company,
    Product,
    ProductCostHistory,
    Purchase,
    PurchaseExpense,
    PurchaseExpenseCategory,
    PurchaseLine,
    Supplier,
    SupplierPaymentReceipt,
)
from ..time_utils import utcnow
from ..validation import ExpenseInput, LineInput
from .authorization import SYSTEM_ACTOR, ActorContext, require_company_access
from .concurrency import lock_for_update, run_unit_of_work
from .ledger_service import LedgerEngine
from .payment_receipt_service import (
    PaymentReceiptService,
    TYPE_EXPENSE,
    TYPE_MAIN_PURCHASE,
)
from .stock_service import StockMutator


STATUS_DRAFT = "DRAFT"
STATUS_APPROVED = "APPROVED"
STATUS_CANCELLED = "CANCELLED"

COST_HISTORY_LIMIT = 10


def expense_per_unit_cents(total_expenses_cents: int, total_quantity: int) -> int:
    """
    Uniform expense share per box across every line of the purchase.

    Nearest-cent rounding, half-up. 0 when the purchase carries no quantity.
    """
    if total_quantity <= 0:
        return 0
    return (total_expenses_cents + total_quantity // 2) // total_quantity


class PurchaseApprovalWorkflow:
    def __init__(
        self,
        session,
        *,
        ledger: LedgerEngine | None = None,
        stock: StockMutator | None = None,
        actor: ActorContext = SYSTEM_ACTOR,
        base_currency: str = "LYD",
    ):
        self.session = session
        self.ledger = ledger or LedgerEngine(session)
        self.stock = stock or StockMutator(session)
        self.receipts = PaymentReceiptService(session, ledger=self.ledger)
        self.actor = actor
        self.base_currency = base_currency

    # --------------------------------------------------------------- purchases

    def get_purchase(self, purchase_id: int, *, lock: bool = False) -> Purchase:
        query = self.session.query(Purchase).filter_by(id=purchase_id)
        if lock:
            query = lock_for_update(query)
        purchase = query.first()
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found")
        return purchase

    def create_purchase(
        self,
        *,
        company_id: int,
        lines: list[LineInput],
        supplier_id: int | None = None,
        invoice_number: str | None = None,
        commit: bool = True,
    ) -> Purchase:
        """Create an unapproved purchase; total = sum(qty * unit_price)."""
        if not lines:
            raise ValidationError("A purchase needs at least one line")

        def _op():
            if self.session.get(Company, company_id) is None:
                raise NotFoundError(f"Company {company_id} not found")
            require_company_access(self.actor, company_id, action="create purchases")
            if supplier_id is not None and self.session.get(Supplier, supplier_id) is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            self._require_products(line.product_id for line in lines)

            purchase = Purchase(
                company_id=company_id,
                supplier_id=supplier_id,
                invoice_number=invoice_number,
                total_cents=sum(line.sub_total_cents for line in lines),
                total_expenses_cents=0,
                status=STATUS_DRAFT,
                is_approved=False,
            )
            purchase.final_total_cents = purchase.total_cents
            purchase.lines = [
                PurchaseLine(
                    product_id=line.product_id,
                    qty=line.qty,
                    unit_price_cents=line.unit_price_cents,
                    sub_total_cents=line.sub_total_cents,
                )
                for line in lines
            ]
            self.session.add(purchase)
            self.session.flush()
            return purchase

        return run_unit_of_work(self.session, _op, commit=commit)

    def _require_products(self, product_ids) -> None:
        wanted = set(product_ids)
        found = {
            row[0]
            for row in self.session.query(Product.id).filter(Product.id.in_(wanted)).all()
        }
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError(f"Product {missing[0]} not found", details={"product_ids": missing})

    def cancel_purchase(self, purchase_id: int, *, commit: bool = True) -> Purchase:
        """Cancel a purchase that was never approved. It has no stock, cost or ledger effects to undo."""
        def _op():
            purchase = self.get_purchase(purchase_id, lock=True)
            require_company_access(self.actor, purchase.company_id, action="cancel purchases")
            if purchase.status == STATUS_CANCELLED:
                raise InvalidStateError("Purchase is already cancelled")
            if purchase.is_approved:
                raise InvalidStateError("Cannot cancel an approved purchase")
            purchase.status = STATUS_CANCELLED
            self.session.flush()
            return purchase

        return run_unit_of_work(self.session, _op, commit=commit)

    # ---------------------------------------------------------------- approval

    def approve(
        self,
        purchase_id: int,
        expenses: list[ExpenseInput] | None = None,
        *,
        actor_id: int | None = None,
        commit: bool = True,
    ) -> dict:
        """
        First approval or expense addendum, depending on the purchase state.

        Returns {"purchase", "product_costs", "payment_receipts"} where
        product_costs is empty for an addendum.
        """
        expenses = list(expenses or [])

        def _op():
            purchase = self.get_purchase(purchase_id, lock=True)
            require_company_access(self.actor, purchase.company_id, action="approve purchases")

            if purchase.status == STATUS_CANCELLED:
                raise InvalidStateError("Cannot approve a cancelled purchase")
            if purchase.is_approved and not expenses:
                raise InvalidStateError("Purchase is already approved; an addendum needs at least one expense")

            categories = self._load_categories(expenses)
            self._require_suppliers(expense.supplier_id for expense in expenses)

            if purchase.is_approved:
                receipts = self._add_expenses(purchase, expenses, categories)
                return {"purchase": purchase, "product_costs": [], "payment_receipts": receipts}

            return self._first_approval(purchase, expenses, categories, actor_id)

        return run_unit_of_work(self.session, _op, commit=commit)

    def _first_approval(self, purchase, expenses, categories, actor_id) -> dict:
        total_expenses = sum(expense.booked_amount_cents(self.base_currency) for expense in expenses)
        total_quantity = sum(line.qty for line in purchase.lines)
        per_unit = expense_per_unit_cents(total_expenses, total_quantity)

        created = self._persist_expenses(purchase, expenses)

        purchase.total_expenses_cents = total_expenses
        purchase.final_total_cents = purchase.total_cents + total_expenses
        purchase.is_approved = True
        purchase.approved_at = utcnow()
        purchase.approved_by_user_id = actor_id if actor_id is not None else self.actor.user_id
        purchase.status = STATUS_APPROVED

        product_costs = []
        for line in purchase.lines:
            snapshot = ProductCostHistory(
                product_id=line.product_id,
                purchase_id=purchase.id,
                company_id=purchase.company_id,
                purchase_price_cents=line.unit_price_cents,
                expense_per_unit_cents=per_unit,
                total_cost_per_unit_cents=line.unit_price_cents + per_unit,
                quantity=line.qty,
            )
            self.session.add(snapshot)
            product_costs.append(snapshot)

            self.stock.adjust(purchase.company_id, line.product_id, line.qty, commit=False)

        receipts = []
        if purchase.supplier_id is not None and purchase.total_cents > 0:
            receipts.append(self.receipts.create_receipt(
                supplier_id=purchase.supplier_id,
                purchase_id=purchase.id,
                amount_cents=purchase.total_cents,
                receipt_type=TYPE_MAIN_PURCHASE,
                description=f"Purchase invoice #{purchase.id}",
                commit=False,
            ))
        receipts.extend(self._issue_expense_receipts(purchase, created, categories))

        self.session.flush()
        return {"purchase": purchase, "product_costs": product_costs, "payment_receipts": receipts}

    def _add_expenses(self, purchase, expenses, categories) -> list[SupplierPaymentReceipt]:
        created = self._persist_expenses(purchase, expenses)
        added = sum(expense.amount_cents for expense in created)

        purchase.total_expenses_cents = (purchase.total_expenses_cents or 0) + added
        purchase.final_total_cents = purchase.total_cents + purchase.total_expenses_cents

        receipts = self._issue_expense_receipts(purchase, created, categories)
        self.session.flush()
        return receipts

    def _persist_expenses(self, purchase, expenses) -> list[PurchaseExpense]:
        created = []
        for expense in expenses:
            row = PurchaseExpense(
                purchase_id=purchase.id,
                category_id=expense.category_id,
                supplier_id=expense.supplier_id,
                amount_cents=expense.booked_amount_cents(self.base_currency),
                currency=expense.currency,
                exchange_rate=expense.exchange_rate,
                amount_foreign_cents=expense.foreign_amount_cents(self.base_currency),
                notes=expense.notes,
            )
            self.session.add(row)
            created.append(row)
        self.session.flush()
        return created

    def _issue_expense_receipts(self, purchase, created, categories) -> list[SupplierPaymentReceipt]:
        receipts = []
        for expense in created:
            if expense.supplier_id is None or expense.amount_cents <= 0:
                continue
            category = categories[expense.category_id]
            receipts.append(self.receipts.create_receipt(
                supplier_id=expense.supplier_id,
                purchase_id=purchase.id,
                purchase_expense_id=expense.id,
                amount_cents=expense.amount_cents,
                receipt_type=TYPE_EXPENSE,
                category_name=category.name,
                description=expense.notes or f"Expense {category.name} - purchase #{purchase.id}",
                commit=False,
            ))
        return receipts

    def _load_categories(self, expenses) -> dict[int, PurchaseExpenseCategory]:
        wanted = {expense.category_id for expense in expenses}
        if not wanted:
            return {}
        categories = {
            category.id: category
            for category in self.session.query(PurchaseExpenseCategory)
            .filter(PurchaseExpenseCategory.id.in_(wanted))
            .all()
        }
        missing = sorted(wanted - set(categories))
        if missing:
            raise NotFoundError(
                f"Expense category {missing[0]} not found", details={"category_ids": missing}
            )
        return categories

    def _require_suppliers(self, supplier_ids) -> None:
        wanted = {supplier_id for supplier_id in supplier_ids if supplier_id is not None}
        if not wanted:
            return
        found = {
            row[0]
            for row in self.session.query(Supplier.id).filter(Supplier.id.in_(wanted)).all()
        }
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError(f"Supplier {missing[0]} not found", details={"supplier_ids": missing})

    # ---------------------------------------------------------------- expenses

    def list_purchase_expenses(self, purchase_id: int) -> list[PurchaseExpense]:
        self.get_purchase(purchase_id)
        return (
            self.session.query(PurchaseExpense)
            .filter_by(purchase_id=purchase_id)
            .order_by(PurchaseExpense.id.asc())
            .all()
        )

    def delete_purchase_expense(self, expense_id: int, *, commit: bool = True) -> dict:
        """
        Remove an expense, its EXPENSE receipts and their ledger entries, then
        recompute the purchase totals. Cost history snapshots are kept.
        """
        def _op():
            expense = self.session.get(PurchaseExpense, expense_id)
            if expense is None:
                raise NotFoundError(f"Purchase expense {expense_id} not found")

            purchase = self.get_purchase(expense.purchase_id, lock=True)
            require_company_access(self.actor, purchase.company_id, action="delete purchase expenses")

            receipts = (
                self.session.query(SupplierPaymentReceipt)
                .filter_by(purchase_expense_id=expense.id, type=TYPE_EXPENSE)
                .all()
            )
            self.receipts.remove_receipts(receipts)

            self.session.delete(expense)
            self.session.flush()

            remaining = sum(
                row.amount_cents
                for row in self.session.query(PurchaseExpense).filter_by(purchase_id=purchase.id).all()
            )
            purchase.total_expenses_cents = remaining
            purchase.final_total_cents = purchase.total_cents + remaining
            self.session.flush()
            return {"purchase": purchase, "deleted_receipts_count": len(receipts)}

        return run_unit_of_work(self.session, _op, commit=commit)

    # -------------------------------------------------------------- categories

    def create_expense_category(
        self,
        *,
        name: str,
        description: str | None = None,
        commit: bool = True,
    ) -> PurchaseExpenseCategory:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")

        def _op():
            if self.session.query(PurchaseExpenseCategory).filter_by(name=name).first():
                raise ValidationError(f"Expense category '{name}' already exists")
            category = PurchaseExpenseCategory(name=name, description=description, is_active=True)
            self.session.add(category)
            self.session.flush()
            return category

        return run_unit_of_work(self.session, _op, commit=commit)

    def list_expense_categories(self, *, include_inactive: bool = False) -> list[PurchaseExpenseCategory]:
        query = self.session.query(PurchaseExpenseCategory)
        if not include_inactive:
            query = query.filter(PurchaseExpenseCategory.is_active.is_(True))
        return query.order_by(PurchaseExpenseCategory.name.asc()).all()

    # ------------------------------------------------------------ cost history

    def get_product_cost_history(
        self,
        product_id: int,
        *,
        company_id: int | None = None,
        limit: int = COST_HISTORY_LIMIT,
    ) -> list[ProductCostHistory]:
        """Latest landed-cost snapshots of a product, newest first."""
        query = self.session.query(ProductCostHistory).filter_by(product_id=product_id)
        if company_id is not None:
            query = query.filter(ProductCostHistory.company_id == company_id)
        return (
            query.order_by(ProductCostHistory.created_at.desc(), ProductCostHistory.id.desc())
            .limit(limit)
            .all()
        )
