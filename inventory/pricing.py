"""
Drug pricing calculator.

Derives the per-sale-unit cost and the two sale prices from the purchase side
of a drug:

    unit_cost          = purchase_price / units_per_purchase
    pos_price          = unit_cost * (1 + pos_markup)
    prescription_price = unit_cost * (1 + prescription_markup)

The same functions back the live preview endpoint and Drug.save(), so both
produce identical Decimals for identical inputs. Nothing here raises: missing
or unusable inputs count as zero. Range checks belong to the serializers.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Union

Number = Union[Decimal, int, float, str, None]

ZERO = Decimal('0')
DISPLAY_QUANTUM = Decimal('0.01')


def to_decimal(value: Number) -> Decimal:
    """Coerce user input to Decimal, treating missing or garbage values as 0."""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() keeps floats like 0.1 from dragging in binary noise
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def round_for_display(value: Number) -> Decimal:
    """Round a price to 2 decimal places for display. Never used before persisting."""
    return to_decimal(value).quantize(DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_unit_cost(purchase_price: Number, units_per_purchase: Number) -> Decimal:
    """Cost of one sale unit. A zero or missing divisor yields 0."""
    divisor = to_decimal(units_per_purchase)
    if divisor == ZERO:
        return ZERO
    return to_decimal(purchase_price) / divisor


def apply_markup(unit_cost: Number, markup: Number) -> Decimal:
    return to_decimal(unit_cost) * (1 + to_decimal(markup))


@dataclass(frozen=True)
class DrugPricing:
    unit_cost: Decimal
    pos_price: Decimal
    prescription_price: Decimal

    def display(self) -> Dict[str, Decimal]:
        return {
            'unit_cost': round_for_display(self.unit_cost),
            'pos_price': round_for_display(self.pos_price),
            'prescription_price': round_for_display(self.prescription_price),
        }


def calculate_pricing(
    purchase_price: Number,
    units_per_purchase: Number,
    pos_markup: Number = None,
    prescription_markup: Number = None,
) -> DrugPricing:
    """Full-precision prices for one drug."""
    unit_cost = calculate_unit_cost(purchase_price, units_per_purchase)
    return DrugPricing(
        unit_cost=unit_cost,
        pos_price=apply_markup(unit_cost, pos_markup),
        prescription_price=apply_markup(unit_cost, prescription_markup),
    )
