# core/money.py
# Денежные значения внутри движка - только целые центы (minor units).
# В доллары переводим ровно один раз, на границе вывода.

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum


class AmountSource(str, Enum):
    MINOR = "minor"  # целые центы
    MAJOR = "major"  # число в долларах
    DISPLAY = "display"  # строка вида "$19.99"


_CENT = Decimal("0.01")
_LEADING_SYMBOLS = re.compile(r"^[^\d.\-]+")


def _parse_display(text: str) -> Decimal:
    """'$1,299.50' -> Decimal('1299.50')"""
    cleaned = _LEADING_SYMBOLS.sub("", text.strip()).replace(",", "")
    if not cleaned:
        raise ValueError(f"no amount in {text!r}")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"cannot parse amount {text!r}") from None


def _parse_number(value) -> Decimal:
    if not isinstance(value, (int, float, Decimal)):
        raise ValueError(f"not a number: {value!r}")
    return Decimal(str(value))


def to_minor_units(value, source: AmountSource) -> int:
    """
    Переводит значение из исходного представления в центы, ровно один раз.
    Строки всегда трактуются как отображаемые суммы, независимо от source.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"boolean is not an amount: {value!r}")

    number = _parse_display(value) if isinstance(value, str) else _parse_number(value)
    if not number.is_finite():
        raise ValueError(f"amount is not finite: {value!r}")

    try:
        if isinstance(value, str):
            cents = (number * 100).quantize(Decimal(1), ROUND_HALF_UP)
        elif source is AmountSource.MINOR:
            cents = number.quantize(Decimal(1), ROUND_HALF_UP)
        else:
            cents = number.quantize(_CENT, ROUND_HALF_UP) * 100
    except InvalidOperation:
        raise ValueError(f"amount out of range: {value!r}") from None

    if cents < 0:
        raise ValueError(f"negative amount: {value!r}")
    return int(cents)


def to_major_units(minor: int) -> float:
    """Центы -> доллары (float с двумя знаками) для отчётов и JSON"""
    return float((Decimal(minor) / 100).quantize(_CENT, ROUND_HALF_UP))


def format_amount(minor: int) -> str:
    """1999 -> '19.99'"""
    return f"{Decimal(minor) / 100:.2f}"


def format_money(minor: int) -> str:
    """1999 -> '$19.99'"""
    return f"${format_amount(minor)}"
