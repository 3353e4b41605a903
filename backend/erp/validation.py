from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import ValidationError


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

CURRENCIES = ("LYD", "USD", "EUR")


@dataclass(frozen=True)
class LineInput:
    """One (product, quantity, unit price) row of a purchase or provisional sale."""
    product_id: int
    qty: int
    unit_price_cents: int

    @property
    def sub_total_cents(self) -> int:
        return self.qty * self.unit_price_cents


@dataclass(frozen=True)
class ExpenseInput:
    """
    An ancillary purchase cost (freight, customs, ...).

    amount_cents is expressed in `currency`; the booked amount is converted
    into the base currency with exchange_rate.
    """
    category_id: int
    amount_cents: int
    supplier_id: int | None = None
    currency: str = "LYD"
    exchange_rate: Decimal = Decimal("1")
    notes: str | None = None

    def booked_amount_cents(self, base_currency: str = "LYD") -> int:
        if self.currency == base_currency:
            return self.amount_cents
        converted = Decimal(self.amount_cents) * self.exchange_rate
        return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def foreign_amount_cents(self, base_currency: str = "LYD") -> int | None:
        return None if self.currency == base_currency else self.amount_cents


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer parsing: rejects floats, booleans, decimals and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_optional_int(value: Any, field: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return parse_int(value, field, minimum=minimum)


def parse_amount_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    cents = parse_int(value, field, minimum=0 if allow_zero else 1)
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return cents


def parse_choice(value: Any, field: str, choices: Iterable[str], *, default: str | None = None) -> str:
    choices = tuple(choices)
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required. Must be one of: {', '.join(choices)}")
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(choices)}")
    return normalized


def parse_rate(value: Any, field: str = "exchange_rate") -> Decimal:
    if value is None:
        return Decimal("1")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError(f"{field} must be positive")
    return rate


def parse_optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None


def require_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_lines(raw: Any, *, field: str = "lines") -> list[LineInput]:
    """Parse `[{product_id, qty, unit_price_cents}, ...]`; at least one line is required."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{field} must be a non-empty list")

    lines = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"{field}[{index}] must be an object")
        lines.append(LineInput(
            product_id=parse_int(item.get("product_id"), f"{field}[{index}].product_id", minimum=1),
            qty=parse_int(item.get("qty"), f"{field}[{index}].qty", minimum=1),
            unit_price_cents=parse_amount_cents(
                item.get("unit_price_cents"), f"{field}[{index}].unit_price_cents", allow_zero=True
            ),
        ))
    return lines


def parse_expenses(raw: Any, *, base_currency: str = "LYD") -> list[ExpenseInput]:
    """Parse the `expenses` array of an approval request. An empty list is valid here."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("expenses must be a list")

    expenses = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"expenses[{index}] must be an object")
        currency = parse_choice(
            item.get("currency"), f"expenses[{index}].currency", CURRENCIES, default=base_currency
        )
        expenses.append(ExpenseInput(
            category_id=parse_int(item.get("category_id"), f"expenses[{index}].category_id", minimum=1),
            amount_cents=parse_amount_cents(item.get("amount_cents"), f"expenses[{index}].amount_cents"),
            supplier_id=parse_optional_int(item.get("supplier_id"), f"expenses[{index}].supplier_id", minimum=1),
            currency=currency,
            exchange_rate=parse_rate(item.get("exchange_rate"), f"expenses[{index}].exchange_rate"),
            notes=parse_optional_text(item.get("notes"), f"expenses[{index}].notes"),
        ))
    return expenses
