# Overview: Provisional sale (quotation) lifecycle and one-way conversion into a firm sale.

"""
Provisional Sale State Machine

WHY: A quotation can be edited freely until it becomes a real sale. Conversion
is the only moment it touches stock, and it can happen at most once.

LIFECYCLE:
    DRAFT -> PENDING -> APPROVED -> CONVERTED
    CANCELLED from DRAFT, PENDING or APPROVED

- CONVERTED and CANCELLED are terminal.
- is_converted flips to True exactly once, together with converted_sale_id,
  converted_at and status CONVERTED; nothing ever resets it.
- Once converted the aggregate is read-only (update/delete/status rejected).
- Conversion creates the Sale, decrements stock per line and marks the quote
  converted in a single transaction, under a row lock on the quote.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..errors import InconsistentStateError, InvalidStateError, NotFoundError, ValidationError
from ..models import Company, Customer, Product, ProvisionalSale, ProvisionalSaleLine, Sale, SaleLine
from ..time_utils import day_bounds, utcnow
from ..validation import LineInput, parse_lines, parse_optional_int, parse_optional_text
from .authorization import SYSTEM_ACTOR, ActorContext, require_company_access
from .concurrency import lock_for_update, run_unit_of_work
from .stock_service import StockMutator


STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_CONVERTED = "CONVERTED"
STATUS_CANCELLED = "CANCELLED"
STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_CONVERTED, STATUS_CANCELLED)

# States a caller may create or set directly; CONVERTED is reachable only via convert_to_sale.
EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_CONVERTED, STATUS_CANCELLED)

_STATUS_RANK = {STATUS_DRAFT: 0, STATUS_PENDING: 1, STATUS_APPROVED: 2}

SALE_TYPES = ("CASH", "CREDIT")
PAYMENT_METHODS = ("CASH", "BANK", "CARD")

UPDATABLE_FIELDS = ("customer_id", "invoice_number", "status", "notes", "lines")


class ProvisionalSaleStateMachine:
    def __init__(
        self,
        session,
        *,
        stock: StockMutator | None = None,
        actor: ActorContext = SYSTEM_ACTOR,
    ):
        self.session = session
        self.stock = stock or StockMutator(session)
        self.actor = actor

    # ------------------------------------------------------------------- reads

    def get(self, provisional_sale_id: int, *, lock: bool = False) -> ProvisionalSale:
        query = self.session.query(ProvisionalSale).filter_by(id=provisional_sale_id)
        if lock:
            query = lock_for_update(query)
        sale = query.first()
        if sale is None:
            raise NotFoundError(f"Provisional sale {provisional_sale_id} not found")
        return sale

    def list_sales(
        self,
        *,
        company_id: int | None = None,
        customer_id: int | None = None,
        status: str | None = None,
        is_converted: bool | None = None,
        today_only: bool = False,
        search: str | None = None,
        limit: int = 10,
        offset: int = 0,
        now: datetime | None = None,
    ) -> tuple[list[ProvisionalSale], int]:
        query = self.session.query(ProvisionalSale)

        if company_id is not None:
            query = query.filter(ProvisionalSale.company_id == company_id)
        if customer_id is not None:
            query = query.filter(ProvisionalSale.customer_id == customer_id)
        if status:
            if status not in STATUSES:
                raise ValidationError(f"Invalid status. Must be one of: {', '.join(STATUSES)}")
            query = query.filter(ProvisionalSale.status == status)
        if is_converted is not None:
            query = query.filter(ProvisionalSale.is_converted.is_(is_converted))
        if today_only:
            start, end = day_bounds(now)
            query = query.filter(ProvisionalSale.created_at >= start, ProvisionalSale.created_at < end)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.outerjoin(Customer, ProvisionalSale.customer_id == Customer.id).filter(
                or_(
                    ProvisionalSale.invoice_number.ilike(pattern),
                    ProvisionalSale.notes.ilike(pattern),
                    Customer.name.ilike(pattern),
                )
            )

        total = query.count()
        items = (
            query.order_by(ProvisionalSale.created_at.desc(), ProvisionalSale.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    # ------------------------------------------------------------------ writes

    def create(
        self,
        *,
        company_id: int,
        lines: list[LineInput],
        customer_id: int | None = None,
        status: str = STATUS_DRAFT,
        invoice_number: str | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> ProvisionalSale:
        if status not in (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED):
            raise ValidationError("A provisional sale starts as DRAFT, PENDING or APPROVED")
        if not lines:
            raise ValidationError("A provisional sale needs at least one line")

        def _op():
            if self.session.get(Company, company_id) is None:
                raise NotFoundError(f"Company {company_id} not found")
            require_company_access(self.actor, company_id, action="create provisional sales")
            self._require_customer(customer_id)
            self._require_products(line.product_id for line in lines)

            sale = ProvisionalSale(
                company_id=company_id,
                customer_id=customer_id,
                invoice_number=invoice_number,
                status=status,
                notes=notes,
                is_converted=False,
                total_cents=sum(line.sub_total_cents for line in lines),
            )
            sale.lines = self._build_lines(lines)
            self.session.add(sale)
            self.session.flush()
            return sale

        return run_unit_of_work(self.session, _op, commit=commit)

    def update(self, provisional_sale_id: int, patch: dict, *, commit: bool = True) -> ProvisionalSale:
        """
        Apply a partial update. `lines`, when present, replaces the whole line set
        and recomputes total; otherwise total is left as is.

        A converted sale is rejected before the patch itself is validated.
        """
        if not isinstance(patch, dict):
            raise ValidationError("Invalid JSON payload")

        def _op():
            sale = self.get(provisional_sale_id, lock=True)
            require_company_access(self.actor, sale.company_id, action="update provisional sales")
            if sale.is_converted:
                raise InvalidStateError("Cannot modify a provisional sale that has been converted")

            unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
            if unknown:
                raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")
            lines = parse_lines(patch["lines"]) if "lines" in patch else None

            if "customer_id" in patch:
                customer_id = parse_optional_int(patch["customer_id"], "customer_id", minimum=1)
                self._require_customer(customer_id)
                sale.customer_id = customer_id
            if "invoice_number" in patch:
                sale.invoice_number = parse_optional_text(patch["invoice_number"], "invoice_number", max_length=64)
            if "notes" in patch:
                sale.notes = parse_optional_text(patch["notes"], "notes", max_length=2000)
            if "status" in patch:
                self._transition(sale, patch["status"])

            if lines is not None:
                self._require_products(line.product_id for line in lines)
                sale.lines.clear()
                self.session.flush()
                sale.lines.extend(self._build_lines(lines))
                sale.total_cents = sum(line.sub_total_cents for line in lines)

            self.session.flush()
            return sale

        return run_unit_of_work(self.session, _op, commit=commit)

    def set_status(self, provisional_sale_id: int, status: str, *, commit: bool = True) -> ProvisionalSale:
        def _op():
            sale = self.get(provisional_sale_id, lock=True)
            require_company_access(self.actor, sale.company_id, action="update provisional sales")
            if sale.is_converted:
                raise InvalidStateError("Cannot modify a provisional sale that has been converted")
            self._transition(sale, status)
            self.session.flush()
            return sale

        return run_unit_of_work(self.session, _op, commit=commit)

    def delete(self, provisional_sale_id: int, *, commit: bool = True) -> None:
        def _op():
            sale = self.get(provisional_sale_id, lock=True)
            require_company_access(self.actor, sale.company_id, action="delete provisional sales")
            if sale.is_converted:
                raise InvalidStateError("Cannot delete a provisional sale that has been converted")

            self.session.query(ProvisionalSaleLine).filter_by(provisional_sale_id=sale.id).delete(
                synchronize_session=False
            )
            self.session.expire(sale, ["lines"])
            self.session.delete(sale)
            self.session.flush()

        run_unit_of_work(self.session, _op, commit=commit)

    def convert_to_sale(
        self,
        provisional_sale_id: int,
        *,
        sale_type: str,
        payment_method: str,
        commit: bool = True,
    ) -> ProvisionalSale:
        """
        Turn the quote into a firm Sale and decrement stock by every line's qty.

        CASH sales are fully paid at creation; CREDIT sales leave the whole total due.
        """
        if sale_type not in SALE_TYPES:
            raise ValidationError(f"Invalid sale_type. Must be one of: {', '.join(SALE_TYPES)}")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Invalid payment_method. Must be one of: {', '.join(PAYMENT_METHODS)}")

        def _op():
            provisional = self.get(provisional_sale_id, lock=True)
            require_company_access(self.actor, provisional.company_id, action="convert provisional sales")

            if provisional.is_converted:
                raise InvalidStateError("Provisional sale has already been converted")
            if provisional.converted_sale_id is not None:
                raise InconsistentStateError(
                    "Provisional sale references a sale but is not marked converted",
                    details={
                        "provisional_sale_id": provisional.id,
                        "converted_sale_id": provisional.converted_sale_id,
                    },
                )
            if provisional.status == STATUS_CANCELLED:
                raise InvalidStateError("Cannot convert a cancelled provisional sale")

            if provisional.status != STATUS_APPROVED:
                provisional.status = STATUS_APPROVED

            is_cash = sale_type == "CASH"
            sale = Sale(
                company_id=provisional.company_id,
                customer_id=provisional.customer_id,
                invoice_number=provisional.invoice_number,
                total_cents=provisional.total_cents,
                sale_type=sale_type,
                payment_method=payment_method,
                paid_amount_cents=provisional.total_cents if is_cash else 0,
                remaining_amount_cents=0 if is_cash else provisional.total_cents,
                is_fully_paid=is_cash,
            )
            sale.lines = [
                SaleLine(
                    product_id=line.product_id,
                    qty=line.qty,
                    unit_price_cents=line.unit_price_cents,
                    sub_total_cents=line.sub_total_cents,
                )
                for line in provisional.lines
            ]
            self.session.add(sale)
            self.session.flush()

            for line in provisional.lines:
                self.stock.adjust(provisional.company_id, line.product_id, -line.qty, commit=False)

            provisional.is_converted = True
            provisional.converted_sale_id = sale.id
            provisional.converted_at = utcnow()
            provisional.status = STATUS_CONVERTED
            self.session.flush()
            return provisional

        return run_unit_of_work(self.session, _op, commit=commit)

    # ----------------------------------------------------------------- helpers

    def _transition(self, sale: ProvisionalSale, status) -> None:
        if status is None or str(status).strip().upper() not in EDITABLE_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(EDITABLE_STATUSES)}")
        target = str(status).strip().upper()
        current = sale.status

        if target == current:
            return
        if current in TERMINAL_STATUSES:
            raise InvalidStateError(f"Provisional sale is {current}; its status can no longer change")
        if target != STATUS_CANCELLED and _STATUS_RANK[target] < _STATUS_RANK[current]:
            raise InvalidStateError(f"Cannot move a provisional sale from {current} back to {target}")
        sale.status = target

    def _build_lines(self, lines: list[LineInput]) -> list[ProvisionalSaleLine]:
        return [
            ProvisionalSaleLine(
                product_id=line.product_id,
                qty=line.qty,
                unit_price_cents=line.unit_price_cents,
                sub_total_cents=line.sub_total_cents,
            )
            for line in lines
        ]

    def _require_customer(self, customer_id: int | None) -> None:
        if customer_id is not None and self.session.get(Customer, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

    def _require_products(self, product_ids) -> None:
        wanted = set(product_ids)
        found = {
            row[0]
            for row in self.session.query(Product.id).filter(Product.id.in_(wanted)).all()
        }
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError(f"Product {missing[0]} not found", details={"product_ids": missing})
