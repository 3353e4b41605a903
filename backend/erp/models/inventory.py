from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Stock(db.Model):
    """
    On-hand boxes per (company, product).

    Only the StockMutator writes this table, always with an arithmetic delta
    (never read-modify-write). boxes may go negative.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("company_id", "product_id", name="uq_stocks_company_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    boxes = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Stock company_id={self.company_id} product_id={self.product_id} boxes={self.boxes}>"

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "product_id": self.product_id,
            "boxes": self.boxes,
            "updated_at": to_utc_z(self.updated_at),
        }
