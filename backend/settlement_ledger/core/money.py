"""Fixed-point money helpers.

All ledger amounts are ``Decimal`` values with two fractional digits. Values
coming from JSON, floats or ints are converted through ``str`` first so a
binary float never leaks its representation error into the ledger.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Convert ``value`` to a two-place Decimal."""
    if value is None or value == "":
        return ZERO
    try:
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        if not value.is_finite():
            raise ValueError(f"Invalid money amount: {value}")
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Invalid money amount: {value!r}") from None


def money_sum(values: Iterable[Any]) -> Decimal:
    """Sum money values without leaving the Decimal domain."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


Money = Annotated[
    Decimal,
    BeforeValidator(to_money),
    PlainSerializer(lambda v: str(to_money(v)), return_type=str, when_used="json"),
]
