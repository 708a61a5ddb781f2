"""
Order validator - whole-request validation for create, update and status change.

Violations are collected, not short-circuited, so a caller can report every
problem at once. Validation is all-or-nothing: the snapshot passed in is
never modified and a new Order is returned only when the request is valid.

Permission and edit-policy failures are raised before field validation.
"""
import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import FrozenSet, List, Mapping, Optional

from salesorder.exceptions import PermissionDenied, PricingOverflow, ValidationFailed, Violation
from salesorder.models.enums import DiscountType, OrderStatus, PriceType, UserRole
from salesorder.models.records import (
    Actor, Discount, Order, OrderItem, OrderItemInput, OrderProposal, PriceList, TransitionRequest
)
from salesorder.services import order_state_service
from salesorder.services.order_number_service import DEFAULT_PREFIX, format_order_number, order_day
from salesorder.services.permission_service import (
    PERMISSION_ERRORS, Permission, actor_can, is_visit_required_for_order, require_permission
)
from salesorder.services.pricing_service import (
    CUSTOM_PRICE_DIGITS, DISCOUNT_VALUE_DIGITS, HUNDRED, check_custom_price_band,
    fits_digits, price_item, price_order
)
from salesorder.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

MESSAGES = {
    'store_required': 'Toko harus dipilih',
    'items_required': 'Order harus memiliki minimal 1 item',
    'active_items_required': 'Order harus memiliki minimal 1 item aktif',
    'duplicate_products': 'Produk tidak boleh duplikat dalam satu order',
    'product_required': 'Produk harus dipilih',
    'product_unknown': 'Produk tidak ditemukan atau belum memiliki daftar harga',
    'quantity': 'Jumlah harus bilangan bulat positif',
    'price_type': 'Tipe harga tidak valid',
    'custom_price': 'Harga kustom wajib diisi jika tipe harga adalah CUSTOM',
    'custom_price_reason': 'Alasan harga kustom wajib diisi jika tipe harga adalah CUSTOM',
    'discount_type': 'Tipe diskon tidak valid',
    'discount_value': 'Nilai diskon harus valid',
    'non_negative': 'Nilai harus non-negatif',
    'percentage': 'Diskon persentase tidak boleh melebihi 100%',
    'order_discount_exceeds': 'Diskon order tidak boleh melebihi subtotal',
    'rejection_reason': 'Alasan penolakan wajib diisi',
}

# Permission required to move an order into each status
STATUS_PERMISSIONS = {
    OrderStatus.DISETUJUI: Permission.ORDER_APPROVE,
    OrderStatus.TIDAK_TERKIRIM: Permission.ORDER_REJECT,
    OrderStatus.TERKIRIM: Permission.ORDER_APPROVE,
}


class ValidationMode(str, enum.Enum):
    CREATE = 'CREATE'
    UPDATE = 'UPDATE'
    STATUS_CHANGE = 'STATUS_CHANGE'


@dataclass(frozen=True)
class EditPolicy:
    """
    Who may change items and discounts of an existing order.

    Owners may edit while the order is in an editable status. Roles listed in
    override_roles may edit any order in any status (business exception for
    ADMIN).
    """
    editable_statuses: FrozenSet[OrderStatus] = frozenset({OrderStatus.DRAFT})
    override_roles: FrozenSet[UserRole] = frozenset({UserRole.ADMIN})

    def can_edit(self, actor: Actor, order: Order) -> bool:
        if not actor_can(actor, Permission.ORDER_UPDATE):
            return False
        if actor.role in self.override_roles:
            return True
        return actor.id == order.sales_id and order.status in self.editable_statuses

    def check(self, actor: Actor, order: Order) -> None:
        """
        Raises:
            PermissionDenied: missing permission or not the owner
            ValidationFailed: owner, but the order is no longer editable
        """
        require_permission(actor, Permission.ORDER_UPDATE)
        if actor.role in self.override_roles:
            return
        if not actor.id or actor.id != order.sales_id:
            raise PermissionDenied()
        if order.status not in self.editable_statuses:
            logger.warning(f"Edit rejected on order {order.order_number}: status {order.status.value}")
            raise ValidationFailed(
                [Violation(('status',), PERMISSION_ERRORS['DRAFT_ONLY_EDIT'])],
                PERMISSION_ERRORS['DRAFT_ONLY_EDIT']
            )


class _Collector:
    """Accumulates violations; pricing overflows are kept apart for typing."""

    def __init__(self):
        self.violations: List[Violation] = []
        self.overflows: List[Violation] = []

    def add(self, path, message):
        self.violations.append(Violation(tuple(path), message))

    def add_overflow(self, error: PricingOverflow):
        self.overflows.extend(error.violations)

    def __len__(self):
        return len(self.violations) + len(self.overflows)

    def raise_if_any(self, context: str):
        if not self.violations and not self.overflows:
            return
        logger.warning(f"{context} rejected with {len(self)} violation(s)")
        if not self.violations:
            raise PricingOverflow(self.overflows)
        raise ValidationFailed(self.violations + self.overflows)


class OrderValidator:
    """Validates proposed order mutations and returns normalized snapshots."""

    def __init__(self, edit_policy: Optional[EditPolicy] = None,
                 enforce_custom_price_band: bool = False,
                 order_number_prefix: str = DEFAULT_PREFIX,
                 timezone_name: str = 'Asia/Jakarta'):
        self.edit_policy = edit_policy or EditPolicy()
        self.enforce_custom_price_band = enforce_custom_price_band
        self.order_number_prefix = order_number_prefix
        self.timezone_name = timezone_name

    def validate(self, mode: ValidationMode, actor: Actor, *,
                 proposal: Optional[OrderProposal] = None,
                 current: Optional[Order] = None,
                 request: Optional[TransitionRequest] = None,
                 price_lists: Optional[Mapping[str, PriceList]] = None,
                 sequence: int = 1,
                 now: Optional[datetime] = None) -> Order:
        """Dispatch on mode. See validate_create / validate_update / validate_status_change."""
        mode = ValidationMode(mode)
        if mode == ValidationMode.CREATE:
            return self.validate_create(proposal, actor, price_lists or {}, sequence=sequence, now=now)
        if mode == ValidationMode.UPDATE:
            return self.validate_update(current, proposal, actor, price_lists or {}, now=now)
        return self.validate_status_change(current, request, actor, now=now)

    # =====================================================
    # CREATE
    # =====================================================

    def validate_create(self, proposal: OrderProposal, actor: Actor,
                        price_lists: Mapping[str, PriceList],
                        sequence: int = 1, now: Optional[datetime] = None) -> Order:
        """
        Validate a new order and build its DRAFT snapshot.

        Args:
            proposal: Items, discount and links submitted by the client
            actor: Authenticated user
            price_lists: Price list per product id
            sequence: Per-day sequence allocated by the host for the order number
            now: Creation time (defaults to UTC now)

        Raises:
            PermissionDenied, ValidationFailed, PricingOverflow
        """
        require_permission(actor, Permission.ORDER_CREATE)

        sales_id = proposal.sales_id or actor.id
        if actor.role != UserRole.ADMIN and sales_id != actor.id:
            logger.warning(f"User {actor.id} tried to create an order for {sales_id}")
            raise PermissionDenied()

        errors = _Collector()
        if is_visit_required_for_order(actor.role) and not proposal.visit_id:
            errors.add(('visitId',), PERMISSION_ERRORS['VISIT_REQUIRED'])
        # A linked visit supplies the store
        if not proposal.store_id and not proposal.visit_id:
            errors.add(('storeId',), MESSAGES['store_required'])

        items = self._check_items(proposal.items, price_lists, errors, MESSAGES['items_required'])
        order_discount = self._check_discount(
            proposal.order_discount, (), 'orderDiscountType', 'orderDiscountValue', errors
        )
        totals = self._check_totals(items, order_discount, errors)
        errors.raise_if_any('Order create')

        now = now or datetime.now(timezone.utc)
        day = order_day(now, self.timezone_name)
        entry = order_state_service.history_entry(
            order_state_service.INITIAL_STATUS, actor.id, actor.name, None, now
        )
        return Order(
            order_number=format_order_number(day, sequence, self.order_number_prefix),
            status=order_state_service.INITIAL_STATUS,
            items=tuple(items),
            subtotal=totals.subtotal,
            order_discount_amount=totals.discount_amount,
            total=totals.total,
            sales_id=sales_id,
            store_id=proposal.store_id,
            visit_id=proposal.visit_id,
            order_discount=order_discount,
            status_history=(entry,),
            order_date=now,
            notes=_clean_text(proposal.notes),
            delivery_date=proposal.delivery_date,
        )

    # =====================================================
    # UPDATE
    # =====================================================

    def validate_update(self, current: Order, proposal: OrderProposal, actor: Actor,
                        price_lists: Mapping[str, PriceList],
                        now: Optional[datetime] = None) -> Order:
        """
        Validate a replacement of items and order discount.

        Items flagged is_deleted are dropped. Notes and delivery date are only
        replaced when provided. Status and history are left as they are.
        """
        self.edit_policy.check(actor, current)

        errors = _Collector()
        items = self._check_items(proposal.items, price_lists, errors, MESSAGES['active_items_required'])
        order_discount = self._check_discount(
            proposal.order_discount, (), 'orderDiscountType', 'orderDiscountValue', errors
        )
        totals = self._check_totals(items, order_discount, errors)
        errors.raise_if_any(f'Order update {current.order_number}')

        changes = dict(
            items=tuple(items),
            subtotal=totals.subtotal,
            order_discount=order_discount,
            order_discount_amount=totals.discount_amount,
            total=totals.total,
        )
        if proposal.notes is not None:
            changes['notes'] = _clean_text(proposal.notes)
        if proposal.delivery_date is not None:
            changes['delivery_date'] = proposal.delivery_date
        return replace(current, **changes)

    # =====================================================
    # STATUS CHANGE
    # =====================================================

    def validate_status_change(self, current: Order, request: TransitionRequest, actor: Actor,
                               now: Optional[datetime] = None) -> Order:
        """
        Validate and apply a status transition.

        Raises:
            PermissionDenied: role lacks the permission for the target status
            InvalidTransition: stale believed status or illegal target
            ValidationFailed: rejection reason missing for TIDAK_TERKIRIM
        """
        new_status = OrderStatus(request.new_status)
        require_permission(actor, STATUS_PERMISSIONS.get(new_status, Permission.ORDER_UPDATE))

        reason = _clean_text(request.rejection_reason)
        request = replace(
            request,
            user_id=actor.id,
            user_name=request.user_name or actor.name,
            rejection_reason=reason,
            notes=_clean_text(request.notes),
        )
        updated = order_state_service.transition(current, request, now=now)

        errors = _Collector()
        if new_status == OrderStatus.TIDAK_TERKIRIM and not reason:
            errors.add(('rejectionReason',), MESSAGES['rejection_reason'])
        errors.raise_if_any(f'Status change {current.order_number}')
        return updated

    # =====================================================
    # PRIVATE HELPERS
    # =====================================================

    def _check_items(self, items: List[OrderItemInput], price_lists: Mapping[str, PriceList],
                     errors: _Collector, empty_message: str) -> List[OrderItem]:
        active = [(index, item) for index, item in enumerate(items or []) if not item.is_deleted]
        if not active:
            errors.add(('items',), empty_message)
            return []

        product_ids = [item.product_id for _, item in active if item.product_id]
        if len(set(product_ids)) != len(product_ids):
            errors.add(('items',), MESSAGES['duplicate_products'])

        priced = []
        for index, item in active:
            result = self._check_item(item, ('items', index), price_lists, errors)
            if result is not None:
                priced.append(result)
        return priced

    def _check_item(self, item: OrderItemInput, path, price_lists: Mapping[str, PriceList],
                    errors: _Collector) -> Optional[OrderItem]:
        before = len(errors)

        if not item.product_id:
            errors.add(path + ('productId',), MESSAGES['product_required'])

        quantity = item.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.add(path + ('quantity',), MESSAGES['quantity'])

        try:
            price_type = PriceType(item.price_type or PriceType.MODERN)
        except ValueError:
            errors.add(path + ('priceType',), MESSAGES['price_type'])
            price_type = None

        price_list = price_lists.get(item.product_id) if item.product_id else None
        custom_price = None
        custom_reason = None

        # Unknown and inactive products have no price list
        if item.product_id and price_list is None:
            errors.add(path + ('productId',), MESSAGES['product_unknown'])

        if price_type == PriceType.CUSTOM:
            custom_price = self._check_custom_price(item, path, price_list, errors)
            custom_reason = _clean_text(item.custom_price_reason)
            if not custom_reason:
                errors.add(path + ('customPriceReason',), MESSAGES['custom_price_reason'])

        discount = self._check_discount(item.discount, path, 'itemDiscountType', 'itemDiscountValue', errors)

        if len(errors) != before:
            return None

        try:
            priced = price_item(quantity, price_type, price_list, custom_price, discount, path)
        except PricingOverflow as e:
            errors.add_overflow(e)
            return None

        return OrderItem(
            product_id=item.product_id,
            quantity=quantity,
            price_type=price_type,
            unit_price=priced.unit_price,
            subtotal=priced.subtotal,
            discount_amount=priced.discount_amount,
            final_price=priced.final_price,
            custom_price=custom_price,
            custom_price_reason=custom_reason,
            discount=discount,
            id=item.id,
        )

    def _check_custom_price(self, item: OrderItemInput, path, price_list: Optional[PriceList],
                            errors: _Collector) -> Optional[Decimal]:
        try:
            custom_price = parse_decimal(item.custom_price)
        except ValueError:
            custom_price = None

        if custom_price is None or custom_price <= 0:
            errors.add(path + ('customPrice',), MESSAGES['custom_price'])
            return None

        if not fits_digits(custom_price, *CUSTOM_PRICE_DIGITS):
            errors.add_overflow(PricingOverflow.for_field(path + ('customPrice',), *CUSTOM_PRICE_DIGITS))
            return None

        if self.enforce_custom_price_band and price_list is not None:
            message = check_custom_price_band(custom_price, price_list)
            if message:
                errors.add(path + ('customPrice',), message)
        return custom_price

    def _check_discount(self, discount: Optional[Discount], path, type_field: str, value_field: str,
                        errors: _Collector) -> Optional[Discount]:
        if discount is None or discount.type is None:
            return None

        try:
            discount_type = DiscountType(discount.type)
        except ValueError:
            errors.add(path + (type_field,), MESSAGES['discount_type'])
            return None

        try:
            value = parse_decimal(discount.value if discount.value is not None else 0)
        except ValueError:
            errors.add(path + (value_field,), MESSAGES['discount_value'])
            return None

        if value < 0:
            errors.add(path + (value_field,), MESSAGES['non_negative'])
            return None
        if discount_type == DiscountType.PERCENTAGE and value > HUNDRED:
            errors.add(path + (value_field,), MESSAGES['percentage'])
            return None
        if not fits_digits(value, *DISCOUNT_VALUE_DIGITS):
            errors.add_overflow(PricingOverflow.for_field(path + (value_field,), *DISCOUNT_VALUE_DIGITS))
            return None

        return Discount(type=discount_type, value=value, description=_clean_text(discount.description))

    def _check_totals(self, items: List[OrderItem], order_discount: Optional[Discount], errors: _Collector):
        if len(errors):
            return None
        try:
            totals = price_order((item.final_price for item in items), order_discount)
        except PricingOverflow as e:
            errors.add_overflow(e)
            return None

        if (order_discount is not None and order_discount.type == DiscountType.FIXED
                and order_discount.value > totals.subtotal):
            errors.add(('orderDiscountValue',), MESSAGES['order_discount_exceeds'])
            return None
        return totals


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


_default_validator = OrderValidator()


def validate(proposal, mode: ValidationMode, actor: Actor, **kwargs) -> Order:
    """
    Validate with the default policy.

    proposal is an OrderProposal for CREATE and UPDATE, a TransitionRequest
    for STATUS_CHANGE. Remaining keyword arguments go to OrderValidator.validate.
    """
    if ValidationMode(mode) == ValidationMode.STATUS_CHANGE:
        return _default_validator.validate(mode, actor, request=proposal, **kwargs)
    return _default_validator.validate(mode, actor, proposal=proposal, **kwargs)


def totals_match(order: Order, tolerance: Decimal = Decimal('0.01')) -> bool:
    """Sum of line final prices minus the order discount equals the total."""
    lines = sum((item.final_price for item in order.items), Decimal('0'))
    return abs(lines - order.order_discount_amount - order.total) <= tolerance
