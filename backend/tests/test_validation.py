# Overview: Pytest coverage for request payload parsing.

from decimal import Decimal

import pytest

from erp.errors import ValidationError
from erp.validation import (
    ExpenseInput,
    parse_amount_cents,
    parse_choice,
    parse_expenses,
    parse_int,
    parse_lines,
    parse_rate,
)


class TestParseInt:

    @pytest.mark.parametrize("value,expected", [(5, 5), ("42", 42), (" 7 ", 7), ("-3", -3)])
    def test_accepts_integers(self, value, expected):
        assert parse_int(value, "qty") == expected

    @pytest.mark.parametrize("value", [None, True, 1.0, "1.5", "1e3", "", "abc", [1]])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            parse_int(value, "qty")

    def test_minimum(self):
        with pytest.raises(ValidationError):
            parse_int(0, "qty", minimum=1)

    def test_amount_bounds(self):
        assert parse_amount_cents(0, "amount_cents", allow_zero=True) == 0
        with pytest.raises(ValidationError):
            parse_amount_cents(0, "amount_cents")
        with pytest.raises(ValidationError):
            parse_amount_cents(1_000_000_000, "amount_cents")


class TestParseChoiceAndRate:

    def test_choice_normalizes_case(self):
        assert parse_choice("cash", "sale_type", ("CASH", "CREDIT")) == "CASH"

    def test_choice_default_and_rejection(self):
        assert parse_choice(None, "currency", ("LYD",), default="LYD") == "LYD"
        with pytest.raises(ValidationError):
            parse_choice("GBP", "currency", ("LYD", "USD"))

    @pytest.mark.parametrize("value", ["0", -1, "nan", "x", True])
    def test_rate_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_rate(value)

    def test_rate_default(self):
        assert parse_rate(None) == Decimal("1")


class TestLinesAndExpenses:

    def test_lines(self):
        [line] = parse_lines([{"product_id": 1, "qty": 3, "unit_price_cents": 2000}])
        assert line.sub_total_cents == 6000

    @pytest.mark.parametrize("raw", [None, [], "x", [{"product_id": 1, "qty": 0, "unit_price_cents": 1}]])
    def test_lines_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_lines(raw)

    def test_expenses_none_is_empty(self):
        assert parse_expenses(None) == []

    def test_expense_currency_conversion(self):
        [expense] = parse_expenses([
            {"category_id": 2, "amount_cents": 333, "currency": "eur", "exchange_rate": "5.5"},
        ])
        assert expense.currency == "EUR"
        # 333 * 5.5 = 1831.5 -> 1832
        assert expense.booked_amount_cents("LYD") == 1832
        assert expense.foreign_amount_cents("LYD") == 333

    def test_base_currency_expense_not_converted(self):
        expense = ExpenseInput(category_id=1, amount_cents=900, exchange_rate=Decimal("3"))
        assert expense.booked_amount_cents("LYD") == 900
        assert expense.foreign_amount_cents("LYD") is None
