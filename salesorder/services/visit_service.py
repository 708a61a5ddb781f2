"""
Store visit service.

A SALES user logs a visit before taking an order at a store; the order then
links back to the visit (see order_service.create_order).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from salesorder.exceptions import NotFoundError, PermissionDenied, ValidationFailed, Violation
from salesorder.models import Visit
from salesorder.models.records import Actor
from salesorder.services.permission_service import (
    Permission, actor_can, is_admin, require_any_permission, require_permission
)

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def calculate_visit_duration(check_in_time: datetime, created_at: Optional[datetime] = None) -> int:
    """Whole minutes between check-in and creation, never negative."""
    created_at = created_at or datetime.now(timezone.utc)
    if check_in_time.tzinfo is None or created_at.tzinfo is None:
        # Naive values are taken as UTC
        check_in_time, created_at = _naive_utc(check_in_time), _naive_utc(created_at)
    minutes = int((created_at - check_in_time).total_seconds() // 60)
    return max(minutes, 0)


def create_visit(session: Session, actor: Actor, store_id: str, check_in_time: datetime,
                 sales_id: Optional[str] = None, is_stock_checked: bool = False,
                 is_debt_collected: bool = False, notes: Optional[str] = None,
                 now: Optional[datetime] = None) -> Visit:
    """
    Log a store visit.

    SALES can only log visits for themselves; ADMIN may log on behalf of a
    sales user by passing sales_id.
    """
    require_permission(actor, Permission.VISIT_CREATE)

    sales_id = sales_id or actor.id
    if sales_id != actor.id and not is_admin(actor.role, actor.is_active):
        logger.warning(f"User {actor.id} tried to log a visit for {sales_id}")
        raise PermissionDenied()

    violations = []
    if not store_id:
        violations.append(Violation(('storeId',), 'Toko harus dipilih'))
    if check_in_time is None:
        violations.append(Violation(('checkInTime',), 'Waktu check-in wajib diisi'))
    if violations:
        raise ValidationFailed(violations)

    now = now or datetime.now(timezone.utc)
    try:
        visit = Visit(
            store_id=store_id,
            sales_id=sales_id,
            visit_date=now,
            check_in_time=check_in_time,
            visit_duration=calculate_visit_duration(check_in_time, now),
            is_stock_checked=is_stock_checked,
            is_debt_collected=is_debt_collected,
            notes=notes.strip() if notes and notes.strip() else None,
        )
        session.add(visit)
        session.commit()
        logger.info(f"Visit {visit.id} logged at store {store_id} by sales {sales_id}")
        return visit
    except Exception:
        session.rollback()
        raise


def get_visit(session: Session, visit_id: str, actor: Actor) -> Visit:
    """Fetch a visit the actor may read (all visits, or own visits)."""
    visit = session.get(Visit, visit_id)
    if not visit:
        raise NotFoundError(f'Kunjungan {visit_id} tidak ditemukan')
    require_any_permission(actor, [Permission.VISIT_READ_ALL, Permission.VISIT_READ_OWN], visit.sales_id)
    return visit


def visit_stats(session: Session, actor: Actor, sales_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Visit summary: totals, visits with an order, stock/debt checks and the
    average duration in minutes.

    Users without visit:read-all only see their own visits.
    """
    if not actor_can(actor, Permission.VISIT_READ_ALL):
        require_permission(actor, Permission.VISIT_READ_OWN, sales_id or actor.id)
        sales_id = actor.id

    query = session.query(Visit)
    if sales_id:
        query = query.filter(Visit.sales_id == sales_id)

    avg_duration = query.with_entities(func.avg(Visit.visit_duration)).scalar()
    return {
        'totalVisits': query.count(),
        'visitsWithOrder': query.filter(Visit.order_id.isnot(None)).count(),
        'stockChecked': query.filter(Visit.is_stock_checked.is_(True)).count(),
        'debtCollected': query.filter(Visit.is_debt_collected.is_(True)).count(),
        'avgDuration': float(avg_duration) if avg_duration is not None else None,
    }
