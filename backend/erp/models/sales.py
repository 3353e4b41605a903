from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProvisionalSale(db.Model):
    """
    Draft quotation with no inventory effect until converted.

    status: DRAFT -> PENDING -> APPROVED -> CONVERTED, CANCELLED from any
    non-terminal state. is_converted is never reset once set.
    """
    __tablename__ = "provisional_sales"
    __table_args__ = (
        db.Index("ix_provisional_sales_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    notes = db.Column(db.Text, nullable=True)

    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    converted_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company")
    customer = db.relationship("Customer")
    converted_sale = db.relationship("Sale", foreign_keys=[converted_sale_id])
    lines = db.relationship(
        "ProvisionalSaleLine",
        backref="provisional_sale",
        cascade="all, delete-orphan",
        order_by="ProvisionalSaleLine.id",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "invoice_number": self.invoice_number,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "is_converted": self.is_converted,
            "converted_sale_id": self.converted_sale_id,
            "converted_sale": (
                {"id": self.converted_sale.id, "invoice_number": self.converted_sale.invoice_number}
                if self.converted_sale else None
            ),
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class ProvisionalSaleLine(db.Model):
    __tablename__ = "provisional_sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provisional_sale_id = db.Column(
        db.Integer, db.ForeignKey("provisional_sales.id"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Integer, nullable=False)  # boxes
    unit_price_cents = db.Column(db.Integer, nullable=False)
    sub_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "sub_total_cents": self.sub_total_cents,
        }


class Sale(db.Model):
    """
    Firm sale invoice.

    sale_type CASH: paid in full at creation. CREDIT: the whole total remains due.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_company_created", "company_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False)
    sale_type = db.Column(db.String(8), nullable=False)  # CASH, CREDIT
    payment_method = db.Column(db.String(8), nullable=False)  # CASH, BANK, CARD
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    is_fully_paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "total_cents": self.total_cents,
            "sale_type": self.sale_type,
            "payment_method": self.payment_method,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "is_fully_paid": self.is_fully_paid,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    sub_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "sub_total_cents": self.sub_total_cents,
        }
