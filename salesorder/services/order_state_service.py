"""
Order status state machine.

STATE MACHINE:
    DRAFT          -> DISETUJUI, TIDAK_TERKIRIM
    DISETUJUI      -> TERKIRIM, TIDAK_TERKIRIM
    TERKIRIM       -> (terminal)
    TIDAK_TERKIRIM -> DISETUJUI (re-approval)

RULES:
1. A request carries the status the caller last saw. If it no longer matches
   the order, the request is stale and rejected.
2. Every accepted transition appends exactly one status history entry.
   History is never rewritten or truncated.
3. This module governs status only. Whether items may still be edited is
   decided by the order validator.
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from salesorder.exceptions import InvalidTransition
from salesorder.models.enums import OrderStatus
from salesorder.models.records import Order, StatusHistoryEntry, TransitionRequest

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({OrderStatus.DISETUJUI, OrderStatus.TIDAK_TERKIRIM}),
    OrderStatus.DISETUJUI: frozenset({OrderStatus.TERKIRIM, OrderStatus.TIDAK_TERKIRIM}),
    OrderStatus.TERKIRIM: frozenset(),
    OrderStatus.TIDAK_TERKIRIM: frozenset({OrderStatus.DISETUJUI}),
}

INITIAL_STATUS = OrderStatus.DRAFT


def allowed_transitions(current_status: OrderStatus) -> FrozenSet[OrderStatus]:
    return STATUS_TRANSITIONS.get(OrderStatus(current_status), frozenset())


def can_transition(current_status: OrderStatus, new_status: OrderStatus) -> bool:
    """True if new_status is reachable from current_status in one step."""
    try:
        return OrderStatus(new_status) in allowed_transitions(current_status)
    except ValueError:
        return False


def is_terminal(status: OrderStatus) -> bool:
    return not allowed_transitions(status)


def history_entry(status: OrderStatus, user_id: str, user_name: Optional[str] = None,
                  notes: Optional[str] = None, now: Optional[datetime] = None) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        status=status,
        timestamp=now or datetime.now(timezone.utc),
        user_id=user_id,
        user_name=user_name,
        notes=notes,
    )


def transition(order: Order, request: TransitionRequest, now: Optional[datetime] = None) -> Order:
    """
    Apply a status transition to an order snapshot.

    Args:
        order: Authoritative current snapshot
        request: Requested transition with the caller's believed status
        now: Timestamp for the history entry and stamps (defaults to UTC now)

    Returns:
        A new Order; the input snapshot is left untouched.

    Raises:
        InvalidTransition: stale believed status, or target not allowed
    """
    current = order.status
    new_status = OrderStatus(request.new_status)

    if OrderStatus(request.current_status) != current:
        logger.warning(
            f"Stale transition on order {order.order_number}: "
            f"expected {OrderStatus(request.current_status).value}, actual {current.value}"
        )
        raise InvalidTransition(current, new_status, reason=InvalidTransition.STALE)

    if not can_transition(current, new_status):
        logger.warning(
            f"Illegal transition on order {order.order_number}: {current.value} -> {new_status.value}"
        )
        raise InvalidTransition(current, new_status, reason=InvalidTransition.ILLEGAL)

    now = now or datetime.now(timezone.utc)
    entry = history_entry(new_status, request.user_id, request.user_name, request.notes, now)
    changes = {
        'status': new_status,
        'status_history': tuple(order.status_history) + (entry,),
    }

    if new_status == OrderStatus.DISETUJUI:
        changes.update(
            approved_at=now,
            approved_by=request.user_id,
            rejection_reason=None,
            rejected_at=None,
            rejected_by=None,
        )
    elif new_status == OrderStatus.TIDAK_TERKIRIM:
        changes.update(
            rejection_reason=request.rejection_reason,
            rejected_at=now,
            rejected_by=request.user_id,
        )
    elif new_status == OrderStatus.TERKIRIM:
        changes['delivery_date'] = request.delivery_date or order.delivery_date or now

    return replace(order, **changes)
