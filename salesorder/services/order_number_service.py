"""
Order number generation: PO-YYYYMMDD-NNN.

The sequence is scoped to the calendar day and restarts at 001 every day.
Allocation must happen under a serialization point; order_service relies on
the unique constraint on orders.order_number and retries on collision.
"""
import re
from datetime import date, datetime
from typing import Iterable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from salesorder.models import Order

DEFAULT_PREFIX = 'PO'
SEQUENCE_WIDTH = 3
ORDER_NUMBER_PATTERN = re.compile(r'^(?P<prefix>[A-Z]+)-(?P<day>\d{8})-(?P<seq>\d{3,})$')


def format_order_number(day: date, sequence: int, prefix: str = DEFAULT_PREFIX) -> str:
    """
    Build an order number.

    Examples:
        format_order_number(date(2025, 5, 29), 1) -> "PO-20250529-001"
        format_order_number(date(2025, 5, 29), 1234) -> "PO-20250529-1234"
    """
    if sequence < 1:
        raise ValueError('Sequence must start at 1')
    return f"{prefix}-{day.strftime('%Y%m%d')}-{str(sequence).zfill(SEQUENCE_WIDTH)}"


def parse_order_number(order_number: str) -> Tuple[str, date, int]:
    """
    Split an order number into (prefix, day, sequence).

    Raises:
        ValueError: if the number does not follow the format
    """
    match = ORDER_NUMBER_PATTERN.match(order_number or '')
    if not match:
        raise ValueError(f'Nomor order tidak valid: {order_number}')
    day = datetime.strptime(match.group('day'), '%Y%m%d').date()
    return match.group('prefix'), day, int(match.group('seq'))


def next_sequence(existing_numbers: Iterable[str], day: date, prefix: str = DEFAULT_PREFIX) -> int:
    """Next free sequence for `day` given the numbers already issued."""
    highest = 0
    for number in existing_numbers:
        try:
            num_prefix, num_day, seq = parse_order_number(number)
        except ValueError:
            continue
        if num_prefix == prefix and num_day == day:
            highest = max(highest, seq)
    return highest + 1


def order_day(now: Optional[datetime] = None, tz_name: str = 'Asia/Jakarta') -> date:
    """Calendar day used for numbering, taken in the business timezone."""
    tz = ZoneInfo(tz_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def allocate_sequence(session: Session, day: date, prefix: str = DEFAULT_PREFIX) -> int:
    """Next sequence for `day` based on the order numbers already stored."""
    day_prefix = f"{prefix}-{day.strftime('%Y%m%d')}-"
    rows = session.query(Order.order_number).filter(
        Order.order_number.like(f'{day_prefix}%')
    ).all()
    return next_sequence((r[0] for r in rows), day, prefix)


def next_order_number(session: Session, day: date, prefix: str = DEFAULT_PREFIX) -> str:
    """Propose the next order number for `day`. Uniqueness is only guaranteed on insert."""
    return format_order_number(day, allocate_sequence(session, day, prefix), prefix)
