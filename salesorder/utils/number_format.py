"""Number parsing utilities for monetary input (plain and Indonesian formats)."""
import re
from decimal import Decimal, InvalidOperation

# 1.234,56 / 1234,56 / 1.234
ID_NUMBER_PATTERN = re.compile(r"^(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")
PLAIN_NUMBER_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


def parse_id_decimal(value: str) -> Decimal:
    """
    Parse a monetary string in Indonesian format (e.g., 1.234,56) to Decimal.

    Rules:
    - Thousands separator: dot (.)
    - Decimal separator: comma (,)
    - No negatives
    - Proper thousand grouping (1.234,56 is valid; 1.2,00 is not)

    Raises:
        ValueError: if the value is invalid or empty.
    """
    if value is None:
        raise ValueError('Format angka tidak valid')

    cleaned = value.strip()
    if not cleaned or not ID_NUMBER_PATTERN.match(cleaned):
        raise ValueError('Format angka tidak valid')

    normalized = cleaned.replace('.', '').replace(',', '.')
    try:
        return Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError('Format angka tidak valid')


def parse_decimal(value) -> Decimal:
    """
    Coerce request input to Decimal.

    Accepts Decimal, int, float (through str, never binary), plain numeric
    strings ("1234.5") and Indonesian strings ("1.234,5"). Booleans, NaN and
    infinities are rejected.

    Raises:
        ValueError: if the value cannot be read as a finite number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Format angka tidak valid')

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip()
        if PLAIN_NUMBER_PATTERN.match(cleaned):
            result = Decimal(cleaned)
        else:
            result = parse_id_decimal(cleaned)
    else:
        raise ValueError('Format angka tidak valid')

    if not result.is_finite():
        raise ValueError('Format angka tidak valid')
    return result
