"""Decimal helpers for currency, rates and quantities.

Every amount is a `Decimal` quantized to two places with ROUND_HALF_UP. Floats
are converted through `str` so `0.1` means exactly one tenth. Results are never
clamped: a negative subtraction comes back negative and callers decide.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid decimal value: {value!r}")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid decimal value: {value!r}") from exc


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    return quantize(value)


def to_rate(value) -> Decimal:
    return quantize(value)


def to_quantity(value) -> Decimal:
    return quantize(value)


def add(*values) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return quantize(total)


def subtract(minuend, subtrahend) -> Decimal:
    return quantize(to_decimal(minuend) - to_decimal(subtrahend))


def multiply(left, right) -> Decimal:
    return quantize(to_decimal(left) * to_decimal(right))


def divide(dividend, divisor) -> Decimal:
    divisor = to_decimal(divisor)
    if divisor == 0:
        raise ZeroDivisionError("Division by zero amount.")
    return quantize(to_decimal(dividend) / divisor)


def percentage(base, rate) -> Decimal:
    """`base * rate / 100` rounded once, half-up, to cents."""

    return quantize(to_decimal(base) * to_decimal(rate) / HUNDRED)


def compare(left, right) -> int:
    left, right = quantize(left), quantize(right)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def money_sum(values) -> Decimal:
    return add(*values)


def format_money(value) -> str:
    return f"{quantize(value):.2f}"
