from __future__ import annotations

from decimal import ROUND_HALF_UP, Context, Decimal

ZERO = Decimal("0")
ONE = Decimal("1")

_RATE_Q = Decimal("0.00000001")

# Fixed arithmetic context for ledger folds, independent of the caller's
# global decimal context.
LEDGER_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal) -> Decimal:
    """Quantize FX rates to 8 decimal places."""
    return value.quantize(_RATE_Q, rounding=ROUND_HALF_UP)


def abs_decimal(value: Decimal) -> Decimal:
    """Return the absolute value using Decimal.copy_abs for stability."""
    return value.copy_abs()
