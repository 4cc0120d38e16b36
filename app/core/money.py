"""Monetary normalization: annual and monthly equivalents of fee items. Exact Decimal arithmetic only."""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable

from app.core.enums import Frequency

# Charges per year. TERM assumes 3 terms per year.
ANNUAL_MULTIPLIERS = {
    Frequency.MONTHLY.value: 12,
    Frequency.TERM.value: 3,
    Frequency.ANNUAL.value: 1,
    Frequency.ONE_TIME.value: 1,
}

# ONE_TIME and MONTHLY are not divided.
MONTHLY_DIVISORS = {
    Frequency.ANNUAL.value: 12,
    Frequency.TERM.value: 3,
}

CENT = Decimal("0.01")


def to_decimal(val: Any) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def frequency_key(frequency: Any) -> str:
    if isinstance(frequency, Enum):
        return str(frequency.value)
    return str(frequency or "").strip().upper()


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def annualize(items: Iterable[Any]) -> Decimal:
    """
    Annual total of items carrying `amount` and `frequency` (objects or dicts).
    Unrecognized frequencies count once, like ONE_TIME.
    """
    total = Decimal("0")
    for item in items:
        amount = to_decimal(_field(item, "amount"))
        multiplier = ANNUAL_MULTIPLIERS.get(frequency_key(_field(item, "frequency")), 1)
        total += amount * multiplier
    return total


def floor_div(amount: Any, divisor: int) -> Decimal:
    return (to_decimal(amount) / divisor).to_integral_value(rounding=ROUND_FLOOR)


def monthly_equivalent(amount: Any, frequency: Any) -> Decimal:
    """MONTHLY and ONE_TIME pass through; ANNUAL and TERM are floor-divided by 12 and 3."""
    divisor = MONTHLY_DIVISORS.get(frequency_key(frequency))
    if divisor is None:
        return to_decimal(amount)
    return floor_div(amount, divisor)


def monthly_total(total_annual: Any) -> Decimal:
    return floor_div(total_annual, 12)


def to_cents(val: Any) -> Decimal:
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)
