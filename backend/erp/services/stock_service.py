# Overview: Atomic per-(company, product) stock adjustments.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..models import Stock
from .concurrency import run_unit_of_work
"""
Stock Invariants (authoritative)

- At most one Stock row per (company_id, product_id).
- boxes is only ever changed by an arithmetic delta applied in one SQL
  statement (boxes = boxes + delta); never read, modified in Python, written back.
- No lower bound: boxes may go negative (oversell is allowed).
- The adjustment joins the caller's transaction when commit=False, so a
  workflow's stock movements commit or roll back with the rest of its writes.
"""

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class StockMutator:
    def __init__(self, session):
        self.session = session

    def get_boxes(self, company_id: int, product_id: int) -> int:
        boxes = (
            self.session.query(Stock.boxes)
            .filter_by(company_id=company_id, product_id=product_id)
            .scalar()
        )
        return int(boxes or 0)

    def adjust(self, company_id: int, product_id: int, delta_boxes: int, *, commit: bool = True) -> int:
        """
        Apply `delta_boxes` to the (company, product) stock row, creating it when absent.

        Returns the resulting number of boxes.
        """
        if isinstance(delta_boxes, bool) or not isinstance(delta_boxes, int):
            raise ValidationError("delta_boxes must be an integer")

        def _op():
            if delta_boxes != 0:
                self._apply_delta(company_id, product_id, delta_boxes)
            return self.get_boxes(company_id, product_id)

        return run_unit_of_work(self.session, _op, commit=commit)

    def _apply_delta(self, company_id: int, product_id: int, delta_boxes: int) -> None:
        table = Stock.__table__
        insert = _UPSERT_DIALECTS.get(self.session.get_bind().dialect.name)

        # Pending ORM changes must reach the database before the Core statement runs.
        self.session.flush()

        if insert is not None:
            stmt = insert(table).values(
                company_id=company_id,
                product_id=product_id,
                boxes=delta_boxes,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.company_id, table.c.product_id],
                set_={"boxes": table.c.boxes + delta_boxes, "updated_at": func.now()},
            )
            self.session.execute(stmt)
        else:
            self._update_or_insert(company_id, product_id, delta_boxes)

        # Loaded Stock instances would otherwise keep the pre-update value.
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, Stock) and obj.company_id == company_id and obj.product_id == product_id:
                self.session.expire(obj)

    def _update_or_insert(self, company_id: int, product_id: int, delta_boxes: int) -> None:
        table = Stock.__table__
        stmt = (
            update(table)
            .where(table.c.company_id == company_id, table.c.product_id == product_id)
            .values(boxes=table.c.boxes + delta_boxes, updated_at=func.now())
        )
        if self.session.execute(stmt).rowcount:
            return

        try:
            with self.session.begin_nested():
                self.session.execute(
                    table.insert().values(company_id=company_id, product_id=product_id, boxes=delta_boxes)
                )
        except IntegrityError:
            # A concurrent writer created the row between our UPDATE and INSERT.
            self.session.execute(stmt)
