"""Pricing Service - line and purchase totals.

Pure functions (no database access). All arithmetic is Decimal; inputs are
coerced through str() so floats like 2.6 become Decimal("2.6") rather than
their binary expansion. Totals are quantized to cents with ROUND_HALF_UP.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence

from purchase_ledger.services.exceptions import ValidationError
from purchase_ledger.utils.constants import MONEY_QUANTUM


@dataclass
class LineItemInput:
    """One requested purchase line before persistence."""

    item_id: int
    quantity: Any
    unit_price: Any
    notes: Optional[str] = None


@dataclass(frozen=True)
class PurchaseTotals:
    """Per-category subtotals, tax and grand total of a purchase."""

    raw_materials: Decimal
    supplies: Decimal
    finished_goods: Decimal
    tax: Decimal
    total: Decimal


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce a number-like value to Decimal.

    Raises:
        ValidationError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number, got {value!r}")
    return result


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    """
    Calculate the total price of one line.

    Args:
        quantity: Purchased quantity (> 0)
        unit_price: Price per unit (>= 0)

    Returns:
        quantity * unit_price rounded to cents

    Raises:
        ValidationError: If quantity <= 0 or unit_price < 0
    """
    qty = to_decimal(quantity, "quantity")
    price = to_decimal(unit_price, "unit_price")
    if qty <= 0:
        raise ValidationError(f"quantity must be greater than zero, got {qty}")
    if price < 0:
        raise ValidationError(f"unit_price cannot be negative, got {price}")
    return quantize_money(qty * price)


def _subtotal(lines: Sequence[LineItemInput]) -> Decimal:
    return quantize_money(
        sum((line_total(line.quantity, line.unit_price) for line in lines), Decimal("0"))
    )


def calculate_totals(
    raw_material_lines: Optional[List[LineItemInput]] = None,
    supply_lines: Optional[List[LineItemInput]] = None,
    finished_good_lines: Optional[List[LineItemInput]] = None,
    tax_amount: Any = 0,
) -> PurchaseTotals:
    """
    Calculate category subtotals and the purchase total.

    Args:
        raw_material_lines: Raw material lines
        supply_lines: Supply lines
        finished_good_lines: Finished good lines
        tax_amount: Tax charged on the invoice (>= 0)

    Returns:
        PurchaseTotals where total = raw_materials + supplies + finished_goods + tax

    Raises:
        ValidationError: If there are no lines at all, a line is invalid,
                         or tax is negative

    Example:
        >>> calculate_totals([LineItemInput(1, 10, "5.20")], tax_amount=0).total
        Decimal('52.00')
    """
    raw_material_lines = raw_material_lines or []
    supply_lines = supply_lines or []
    finished_good_lines = finished_good_lines or []

    if not (raw_material_lines or supply_lines or finished_good_lines):
        raise ValidationError("At least one line item is required")

    tax = to_decimal(tax_amount if tax_amount is not None else 0, "tax_amount")
    if tax < 0:
        raise ValidationError(f"tax_amount cannot be negative, got {tax}")
    tax = quantize_money(tax)

    raw_total = _subtotal(raw_material_lines)
    supply_total = _subtotal(supply_lines)
    finished_total = _subtotal(finished_good_lines)

    return PurchaseTotals(
        raw_materials=raw_total,
        supplies=supply_total,
        finished_goods=finished_total,
        tax=tax,
        total=raw_total + supply_total + finished_total + tax,
    )
