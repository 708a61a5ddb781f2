"""
Order service - persistence host for the order engine.

Rows are mapped to engine snapshots, the engine validates the request, and
the returned snapshot is written back. The engine never sees the session.

Concurrency:
- Order numbers rely on the unique constraint on orders.order_number; a
  collision rolls back a savepoint and the next sequence is tried.
- Status changes are written with a conditional UPDATE on the status that
  was read; zero rows updated means another request won the race.
"""
import logging
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Mapping, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salesorder.exceptions import (
    InvalidTransition, NotFoundError, OrderEngineError, PermissionDenied, ValidationFailed, Violation
)
from salesorder.models import Order as OrderRow, OrderItem as OrderItemRow, OrderStatus, Visit
from salesorder.models.enums import DiscountType, PriceType
from salesorder.models.records import (
    Actor, Discount, Order, OrderItem, OrderProposal, StatusHistoryEntry, TransitionRequest
)
from salesorder.services.order_number_service import DEFAULT_PREFIX, allocate_sequence, order_day
from salesorder.services.order_validator import OrderValidator
from salesorder.services.permission_service import (
    Permission, actor_can, require_any_permission
)
from salesorder.services.product_service import load_price_lists

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
DEFAULT_MAX_RETRIES = 5
READ_PERMISSIONS = (Permission.ORDER_READ_ALL, Permission.ORDER_READ_OWN)

SORT_COLUMNS = {
    'orderDate': OrderRow.order_date,
    'orderNumber': OrderRow.order_number,
    'total': OrderRow.total,
    'status': OrderRow.status,
}


def build_validator(config: Mapping) -> OrderValidator:
    """Validator configured from the Flask config (or any mapping)."""
    return OrderValidator(
        enforce_custom_price_band=config.get('CUSTOM_PRICE_BAND_ENFORCED', False),
        order_number_prefix=config.get('ORDER_NUMBER_PREFIX', DEFAULT_PREFIX),
        timezone_name=config.get('ORDER_TIMEZONE', 'Asia/Jakarta'),
    )


# =====================================================
# ROW <-> SNAPSHOT MAPPING
# =====================================================

def _discount(type_value, value, description) -> Optional[Discount]:
    if not type_value:
        return None
    return Discount(type=DiscountType(type_value), value=Decimal(value or 0), description=description)


def to_snapshot(row: OrderRow) -> Order:
    """Map an orders row (with its items) to an engine snapshot."""
    items = tuple(
        OrderItem(
            product_id=item.product_id,
            quantity=item.quantity,
            price_type=PriceType(item.price_type),
            unit_price=Decimal(item.unit_price),
            subtotal=Decimal(item.subtotal),
            discount_amount=Decimal(item.item_discount or 0),
            final_price=Decimal(item.final_price),
            custom_price=Decimal(item.custom_price) if item.custom_price is not None else None,
            custom_price_reason=item.custom_price_reason,
            discount=_discount(item.item_discount_type, item.item_discount_value, item.discount_description),
            id=item.id,
        )
        for item in row.items
    )
    return Order(
        order_number=row.order_number,
        status=OrderStatus(row.status),
        items=items,
        subtotal=Decimal(row.subtotal),
        order_discount_amount=Decimal(row.order_discount or 0),
        total=Decimal(row.total),
        sales_id=row.sales_id,
        store_id=row.store_id,
        visit_id=row.visit_id,
        order_discount=_discount(row.order_discount_type, row.order_discount_value,
                                 row.order_discount_description),
        status_history=tuple(StatusHistoryEntry.from_dict(e) for e in row.status_history or ()),
        order_date=row.order_date,
        notes=row.notes,
        delivery_date=row.delivery_date,
        rejection_reason=row.rejection_reason,
        rejected_at=row.rejected_at,
        rejected_by=row.rejected_by,
        approved_at=row.approved_at,
        approved_by=row.approved_by,
        id=row.id,
    )


def _status_values(snapshot: Order) -> dict:
    """Columns touched by a status transition."""
    return {
        'status': snapshot.status.value,
        'status_history': [entry.to_dict() for entry in snapshot.status_history],
        'delivery_date': snapshot.delivery_date,
        'rejection_reason': snapshot.rejection_reason,
        'rejected_at': snapshot.rejected_at,
        'rejected_by': snapshot.rejected_by,
        'approved_at': snapshot.approved_at,
        'approved_by': snapshot.approved_by,
    }


def _apply_item(row: OrderItemRow, item: OrderItem, position: int) -> OrderItemRow:
    discount = item.discount
    row.product_id = item.product_id
    row.position = position
    row.quantity = item.quantity
    row.price_type = item.price_type.value
    row.unit_price = item.unit_price
    row.custom_price = item.custom_price
    row.custom_price_reason = item.custom_price_reason
    row.item_discount_type = discount.type.value if discount else None
    row.item_discount_value = discount.value if discount else ZERO
    row.item_discount = item.discount_amount
    row.discount_description = discount.description if discount else None
    row.subtotal = item.subtotal
    row.final_price = item.final_price
    return row


def apply_snapshot(row: OrderRow, snapshot: Order) -> OrderRow:
    """Write an engine snapshot onto an orders row. Item rows are reused by id."""
    discount = snapshot.order_discount
    row.order_number = snapshot.order_number
    if snapshot.order_date is not None:
        row.order_date = snapshot.order_date
    row.subtotal = snapshot.subtotal
    row.total = snapshot.total
    row.order_discount_type = discount.type.value if discount else None
    row.order_discount_value = discount.value if discount else ZERO
    row.order_discount = snapshot.order_discount_amount
    row.order_discount_description = discount.description if discount else None
    row.notes = snapshot.notes
    row.sales_id = snapshot.sales_id
    row.store_id = snapshot.store_id
    row.visit_id = snapshot.visit_id
    for column, value in _status_values(snapshot).items():
        setattr(row, column, value)

    existing = {item.id: item for item in row.items if item.id}
    row.items = [
        _apply_item(existing.get(item.id) or OrderItemRow(), item, position)
        for position, item in enumerate(snapshot.items)
    ]
    return row


# =====================================================
# HELPERS
# =====================================================

def _get_row(session: Session, order_id: str, actor: Actor, for_update: bool = False) -> OrderRow:
    """
    Load an order row for the actor.

    Only readers of all orders learn that an id does not exist; anyone else
    gets the same denial they would get for a foreign order.
    """
    query = session.query(OrderRow).filter(OrderRow.id == order_id)
    if for_update:
        query = query.with_for_update()
    row = query.first()
    if not row:
        if not actor_can(actor, Permission.ORDER_READ_ALL):
            logger.warning(f"User {getattr(actor, 'id', None)} requested unknown order {order_id}")
            raise PermissionDenied()
        raise NotFoundError(f'Order {order_id} tidak ditemukan')
    return row


def _order_number_taken(session: Session, order_number: str) -> bool:
    return session.query(OrderRow.id).filter(OrderRow.order_number == order_number).first() is not None


def _day_bounds(value, end: bool = False) -> datetime:
    """A date filter covers the whole UTC day; datetimes are used as given."""
    if isinstance(value, datetime):
        return value
    if end:
        value = value + timedelta(days=1)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _check_visit(session: Session, snapshot: Order) -> Optional[Visit]:
    """
    The linked visit must exist, belong to the order's sales user, be taken at
    the same store and not be linked to another order yet.
    """
    if not snapshot.visit_id:
        return None

    visit = session.get(Visit, snapshot.visit_id)
    if not visit:
        raise ValidationFailed([Violation(('visitId',), 'Kunjungan tidak ditemukan')])

    violations = []
    if visit.sales_id != snapshot.sales_id:
        violations.append(Violation(('visitId',), 'Kunjungan bukan milik sales ini'))
    if visit.order_id:
        violations.append(Violation(('visitId',), 'Kunjungan sudah memiliki order'))
    if snapshot.store_id and snapshot.store_id != visit.store_id:
        violations.append(Violation(('storeId',), 'Toko order harus sama dengan toko kunjungan'))
    if violations:
        logger.warning(f"Visit {visit.id} rejected for order {snapshot.order_number}")
        raise ValidationFailed(violations)
    return visit


# =====================================================
# OPERATIONS
# =====================================================

def create_order(session: Session, actor: Actor, proposal: OrderProposal,
                 validator: Optional[OrderValidator] = None,
                 max_retries: int = DEFAULT_MAX_RETRIES,
                 now: Optional[datetime] = None) -> OrderRow:
    """
    Validate and persist a new DRAFT order.

    Args:
        session: Database session
        actor: Authenticated user
        proposal: Items, discount, store and visit
        validator: Configured validator (default settings if omitted)
        max_retries: Attempts at allocating a unique order number
        now: Creation time (defaults to UTC now)

    Returns:
        The persisted orders row

    Raises:
        PermissionDenied, ValidationFailed, PricingOverflow
        OrderEngineError: no unique order number after max_retries attempts
    """
    validator = validator or OrderValidator()
    now = now or datetime.now(timezone.utc)
    day = order_day(now, validator.timezone_name)
    price_lists = load_price_lists(session, (item.product_id for item in proposal.active_items))

    try:
        visit = None
        for attempt in range(1, max_retries + 1):
            sequence = allocate_sequence(session, day, validator.order_number_prefix)
            snapshot = validator.validate_create(proposal, actor, price_lists, sequence=sequence, now=now)
            if attempt == 1:
                visit = _check_visit(session, snapshot)

            try:
                with session.begin_nested():
                    row = apply_snapshot(OrderRow(), snapshot)
                    if visit is not None and not row.store_id:
                        row.store_id = visit.store_id
                    session.add(row)
                    session.flush()
            except IntegrityError:
                if not _order_number_taken(session, snapshot.order_number):
                    raise
                logger.warning(
                    f"Order number {snapshot.order_number} already taken "
                    f"(attempt {attempt}/{max_retries})"
                )
                continue

            if visit is not None:
                visit.order_id = row.id
            session.commit()
            logger.info(
                f"Order {row.order_number} created by user {actor.id}: "
                f"{len(snapshot.items)} item(s), total {snapshot.total}"
            )
            return row

        raise OrderEngineError('Gagal membuat nomor order unik, silakan coba lagi', 503)
    except Exception:
        session.rollback()
        raise


def update_order(session: Session, order_id: str, actor: Actor, proposal: OrderProposal,
                 validator: Optional[OrderValidator] = None) -> OrderRow:
    """Replace items and order discount of an existing order."""
    validator = validator or OrderValidator()
    row = _get_row(session, order_id, actor, for_update=True)
    current = to_snapshot(row)
    price_lists = load_price_lists(session, (item.product_id for item in proposal.active_items))

    try:
        updated = validator.validate_update(current, proposal, actor, price_lists)
        apply_snapshot(row, updated)
        session.commit()
        logger.info(f"Order {row.order_number} updated by user {actor.id}: total {updated.total}")
        return row
    except Exception:
        session.rollback()
        raise


def write_status(session: Session, order_id: str, expected_status: OrderStatus, snapshot: Order) -> bool:
    """
    Conditionally write the status columns of a transitioned snapshot.

    Returns:
        False if the stored status is no longer expected_status
    """
    result = session.execute(
        update(OrderRow)
        .where(OrderRow.id == order_id, OrderRow.status == OrderStatus(expected_status).value)
        .values(**_status_values(snapshot))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def change_order_status(session: Session, order_id: str, actor: Actor, request: TransitionRequest,
                        validator: Optional[OrderValidator] = None,
                        now: Optional[datetime] = None) -> OrderRow:
    """
    Move an order to a new status.

    Raises:
        PermissionDenied, ValidationFailed
        InvalidTransition: illegal target, or the status changed since it was read
    """
    validator = validator or OrderValidator()
    row = _get_row(session, order_id, actor)
    current = to_snapshot(row)

    try:
        updated = validator.validate_status_change(current, request, actor, now=now)
        if not write_status(session, row.id, current.status, updated):
            logger.warning(f"Order {row.order_number} changed concurrently, transition rejected")
            raise InvalidTransition(current.status, updated.status, reason=InvalidTransition.STALE)
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(row)
    logger.info(
        f"Order {row.order_number}: {current.status.value} -> {updated.status.value} by user {actor.id}"
    )
    return row


def get_order(session: Session, order_id: str, actor: Actor) -> OrderRow:
    """Fetch an order the actor may read (order:read-all, or order:read-own as owner)."""
    require_any_permission(actor, READ_PERMISSIONS, getattr(actor, 'id', None))
    row = _get_row(session, order_id, actor)
    require_any_permission(actor, READ_PERMISSIONS, row.sales_id)
    return row


def list_orders(session: Session, actor: Actor, status: Optional[OrderStatus] = None,
                search: Optional[str] = None, store_id: Optional[str] = None,
                sales_id: Optional[str] = None, start_date=None, end_date=None,
                sort_by: str = 'orderDate', sort_order: str = 'desc') -> List[OrderRow]:
    """
    Orders visible to the actor.

    Users without order:read-all only ever see their own orders, whatever
    sales_id they ask for.

    Args:
        session: Database session
        actor: Authenticated user
        status: Only orders in this status
        search: Substring of the order number or notes
        store_id: Only orders of this store
        sales_id: Only orders of this sales user
        start_date: Earliest order date (a date covers the whole UTC day)
        end_date: Latest order date, inclusive
        sort_by: orderDate, orderNumber, total or status
        sort_order: asc or desc

    Raises:
        PermissionDenied: actor may not read orders
        ValidationFailed: unknown sort field or direction
    """
    require_any_permission(actor, READ_PERMISSIONS, getattr(actor, 'id', None))

    violations = []
    if sort_by not in SORT_COLUMNS:
        violations.append(Violation(('sortBy',), 'Kolom pengurutan tidak valid'))
    if sort_order not in ('asc', 'desc'):
        violations.append(Violation(('sortOrder',), 'Arah pengurutan tidak valid'))
    if violations:
        raise ValidationFailed(violations)

    query = session.query(OrderRow)
    if not actor_can(actor, Permission.ORDER_READ_ALL):
        query = query.filter(OrderRow.sales_id == actor.id)
    if sales_id:
        query = query.filter(OrderRow.sales_id == sales_id)
    if store_id:
        query = query.filter(OrderRow.store_id == store_id)
    if status is not None:
        query = query.filter(OrderRow.status == OrderStatus(status).value)
    if start_date is not None:
        query = query.filter(OrderRow.order_date >= _day_bounds(start_date))
    if end_date is not None:
        bound = _day_bounds(end_date, end=True)
        if isinstance(end_date, datetime):
            query = query.filter(OrderRow.order_date <= bound)
        else:
            query = query.filter(OrderRow.order_date < bound)

    search = (search or '').strip()
    if search:
        query = query.filter(
            or_(
                OrderRow.order_number.ilike(f'%{search}%'),
                OrderRow.notes.ilike(f'%{search}%'),
            )
        )

    column = SORT_COLUMNS[sort_by]
    if sort_order == 'asc':
        query = query.order_by(column.asc(), OrderRow.order_number.asc())
    else:
        query = query.order_by(column.desc(), OrderRow.order_number.desc())
    return query.all()
