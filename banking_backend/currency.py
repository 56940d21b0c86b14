"""
Currency Support Module

Fixed enumeration of account currencies and Decimal amount handling.
NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Union

from .exceptions import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

AMOUNT_PRECISION = 2
_QUANTUM = Decimal('0.1') ** AMOUNT_PRECISION
_MINOR_UNITS = 10 ** AMOUNT_PRECISION

# Balances and amounts are stored as signed 64-bit minor units
MAX_MINOR_UNITS = 2 ** 63 - 1
MAX_AMOUNT = Decimal(MAX_MINOR_UNITS) / _MINOR_UNITS


class Currency(Enum):
    """Supported account currencies keyed by their stored identifier"""
    UAH = (1, "UAH")
    USD = (2, "USD")
    EUR = (3, "EUR")

    def __init__(self, currency_id: int, code: str):
        self.currency_id = currency_id
        self.code = code

    @classmethod
    def from_id(cls, currency_id: int) -> 'Currency':
        """Resolve a stored currency id, rejecting anything outside the enumeration"""
        for currency in cls:
            if currency.currency_id == currency_id:
                return currency
        raise ValidationError(
            f"Unsupported currency id: {currency_id}", currency_id=currency_id
        )


def quantize(amount: Decimal) -> Decimal:
    """Round to ledger precision"""
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def to_amount(value: Union[Decimal, int, str, float]) -> Decimal:
    """
    Normalise a caller-supplied amount.

    Floats are converted through their string form so 0.1 stays 0.1.
    Amounts are never rounded: anything finer than a minor unit is refused.

    Raises:
        ValidationError: if the value is not a number, is not positive, has
            more than two decimal places or exceeds MAX_AMOUNT
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise ValidationError(
            f"Amount {amount} exceeds the maximum of {MAX_AMOUNT}", max_amount=MAX_AMOUNT
        )

    try:
        normalised = quantize(amount)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if normalised != amount:
        raise ValidationError(
            f"Amount {amount} has more than {AMOUNT_PRECISION} decimal places"
        )
    return normalised


def to_minor_units(amount: Decimal) -> int:
    """Convert a Decimal amount to integer minor units for storage"""
    return int(quantize(amount) * _MINOR_UNITS)


def from_minor_units(units: int) -> Decimal:
    """Convert stored integer minor units back to a Decimal amount"""
    return quantize(Decimal(units) / _MINOR_UNITS)
