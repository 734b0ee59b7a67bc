"""Spanish "total en letras" for the fiscal summary.

Integers below one hundred are spelled out; from one hundred up the integer is
written with digits. Cents always follow as ``con NN/100``.
"""

from __future__ import annotations

from decimal import Decimal

from finance.money import quantize

_UNITS = ("", "uno", "dos", "tres", "cuatro", "cinco", "seis", "siete", "ocho", "nueve")
_TEENS = (
    "diez",
    "once",
    "doce",
    "trece",
    "catorce",
    "quince",
    "dieciséis",
    "diecisiete",
    "dieciocho",
    "diecinueve",
)
_TWENTIES = (
    "veinte",
    "veintiuno",
    "veintidós",
    "veintitrés",
    "veinticuatro",
    "veinticinco",
    "veintiséis",
    "veintisiete",
    "veintiocho",
    "veintinueve",
)
_TENS = ("", "", "veinte", "treinta", "cuarenta", "cincuenta", "sesenta", "setenta", "ochenta", "noventa")


def number_below_hundred(value: int) -> str:
    if value < 0 or value >= 100:
        raise ValueError(f"{value} is outside 0-99.")
    if value == 0:
        return "cero"
    if value < 10:
        return _UNITS[value]
    if value < 20:
        return _TEENS[value - 10]
    if value < 30:
        return _TWENTIES[value - 20]
    tens, units = divmod(value, 10)
    if units:
        return f"{_TENS[tens]} y {_UNITS[units]}"
    return _TENS[tens]


def _before_noun(words: str) -> str:
    # "uno" shortens in front of a masculine noun: veintiún dólares, treinta y un dólares.
    if words.endswith("veintiuno"):
        return words[: -len("veintiuno")] + "veintiún"
    if words.endswith("uno"):
        return words[: -len("uno")] + "un"
    return words


def amount_in_words(
    amount,
    *,
    singular: str = "dólar",
    plural: str = "dólares",
) -> str:
    value = quantize(amount)
    if value < 0:
        raise ValueError("Amount in words is only defined for non-negative amounts.")

    integer = int(value)
    cents = int((value - Decimal(integer)) * 100)

    if integer == 1:
        text = f"un {singular}"
    elif integer < 100:
        text = f"{_before_noun(number_below_hundred(integer))} {plural}"
    else:
        text = f"{integer} {plural}"

    return f"{text} con {cents:02d}/100"
