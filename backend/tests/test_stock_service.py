# Overview: Pytest coverage for atomic stock adjustments.

import pytest

from erp.errors import ValidationError
from erp.models import Stock
from erp.services.stock_service import StockMutator


class TestStockMutator:

    def test_adjust_creates_missing_row(self, db_session, company_a, product_x):
        stock = StockMutator(db_session)
        assert stock.adjust(company_a.id, product_x.id, 12) == 12
        rows = db_session.query(Stock).filter_by(company_id=company_a.id, product_id=product_x.id).all()
        assert len(rows) == 1
        assert rows[0].boxes == 12

    def test_adjust_accumulates_on_existing_row(self, db_session, company_a, product_x):
        stock = StockMutator(db_session)
        stock.adjust(company_a.id, product_x.id, 10)
        stock.adjust(company_a.id, product_x.id, 5)
        assert stock.adjust(company_a.id, product_x.id, -3) == 12
        assert db_session.query(Stock).count() == 1

    def test_stock_may_go_negative(self, db_session, company_a, product_x):
        stock = StockMutator(db_session)
        stock.adjust(company_a.id, product_x.id, 2)
        assert stock.adjust(company_a.id, product_x.id, -5) == -3

    def test_decrement_of_missing_row_starts_negative(self, db_session, company_a, product_x):
        assert StockMutator(db_session).adjust(company_a.id, product_x.id, -4) == -4

    def test_rows_are_scoped_per_company(self, db_session, company_a, company_b, product_x):
        stock = StockMutator(db_session)
        stock.adjust(company_a.id, product_x.id, 7)
        stock.adjust(company_b.id, product_x.id, 1)
        assert stock.get_boxes(company_a.id, product_x.id) == 7
        assert stock.get_boxes(company_b.id, product_x.id) == 1

    def test_loaded_instance_sees_new_value(self, db_session, company_a, product_x):
        stock = StockMutator(db_session)
        stock.adjust(company_a.id, product_x.id, 3)
        row = db_session.query(Stock).filter_by(company_id=company_a.id, product_id=product_x.id).one()
        assert row.boxes == 3

        stock.adjust(company_a.id, product_x.id, 4, commit=False)
        assert row.boxes == 7
        db_session.rollback()
        assert stock.get_boxes(company_a.id, product_x.id) == 3

    def test_zero_delta_is_noop(self, db_session, company_a, product_x):
        assert StockMutator(db_session).adjust(company_a.id, product_x.id, 0) == 0
        assert db_session.query(Stock).count() == 0

    @pytest.mark.parametrize("delta", [1.5, "3", True])
    def test_non_integer_delta_rejected(self, db_session, company_a, product_x, delta):
        with pytest.raises(ValidationError):
            StockMutator(db_session).adjust(company_a.id, product_x.id, delta)
