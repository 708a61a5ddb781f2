"""
Formatting utilities for documents.
Numbers, money and dates in Indonesian style.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional


def _group_thousands(integer_part: str) -> str:
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    return '.'.join(groups)[::-1]


def num_id(value: Union[int, float, Decimal, str, None], decimals: Optional[int] = None) -> str:
    """
    Format a number in Indonesian style:
    - Thousands separator: dot (.)
    - Decimal separator: comma (,)
    - Trailing zero decimals are dropped

    Examples:
        num_id(1500) -> "1.500"
        num_id(1500.5) -> "1.500,5"
        num_id(185.00) -> "185"
        num_id(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    if num == 0:
        return "0"

    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    num_str = f"{num:f}"

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
        decimal_part = decimal_part.rstrip('0')
    else:
        integer_part = num_str
        decimal_part = ""

    if integer_part.startswith('-'):
        sign_str = '-'
        integer_part = integer_part[1:]
    else:
        sign_str = ''

    integer_formatted = _group_thousands(integer_part)

    if decimal_part:
        return f"{sign_str}{integer_formatted},{decimal_part}"
    return f"{sign_str}{integer_formatted}"


def money_idr(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount as Rupiah with up to 2 decimals.

    Examples:
        money_idr(1500000) -> "Rp 1.500.000"
        money_idr(1500.5) -> "Rp 1.500,5"
        money_idr(None) -> "-"
    """
    formatted = num_id(value, decimals=2)
    if formatted == "-":
        return formatted
    if formatted.startswith('-'):
        return f"-Rp {formatted[1:]}"
    return f"Rp {formatted}"


def date_id(value: Union[date, datetime, None]) -> str:
    """
    Format a date as DD/MM/YYYY.

    Examples:
        date_id(date(2026, 1, 12)) -> "12/01/2026"
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")


def datetime_id(value: Union[datetime, None], with_time: bool = True) -> str:
    """Format a datetime as DD/MM/YYYY HH:MM."""
    if value is None or not isinstance(value, datetime):
        return "-"

    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")
