"""
Formatting helpers for emails and PDFs.
Amounts in euro style: dot for thousands, comma for decimals.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union


def money_eur(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount with exactly 2 decimals and the euro sign.

    Examples:
        money_eur(136.8) -> "€136,80"
        money_eur(1500) -> "€1.500,00"
        money_eur(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    return f"{sign}€{integer_formatted},{decimal_part}"


def date_eu(value: Union[date, datetime, None]) -> str:
    """DD/MM/YYYY, or "-" for missing values."""
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")
