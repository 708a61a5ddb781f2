"""
Unit tests for the order validator (create, update and status change).
"""

import pytest
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from salesorder.exceptions import (
    InvalidTransition, PermissionDenied, PricingOverflow, ValidationFailed
)
from salesorder.models import DiscountType, OrderStatus, PriceType, UserRole
from salesorder.models.records import (
    Actor, Discount, OrderItemInput, OrderProposal, PriceList, TransitionRequest
)
from salesorder.services.order_validator import (
    MESSAGES, EditPolicy, OrderValidator, ValidationMode, totals_match, validate,
)
from salesorder.services.permission_service import PERMISSION_ERRORS


@pytest.fixture
def validator():
    return OrderValidator()


@pytest.fixture
def proposal():
    """Two lines: 2 x MODERN prod-1, 3 x RETAIL prod-2 with 10% off; FIXED 1.000 off the order."""
    return OrderProposal(
        items=[
            OrderItemInput(product_id='prod-1', quantity=2),
            OrderItemInput(
                product_id='prod-2', quantity=3, price_type=PriceType.RETAIL,
                discount=Discount(DiscountType.PERCENTAGE, Decimal('10'))
            ),
        ],
        visit_id='visit-1',
        store_id='store-1',
        order_discount=Discount(DiscountType.FIXED, Decimal('1000'), 'Promo toko baru'),
    )


@pytest.fixture
def draft(validator, proposal, sales, price_lists, now):
    return validator.validate_create(proposal, sales, price_lists, sequence=1, now=now)


def single_line(*items, **kwargs):
    kwargs.setdefault('visit_id', 'visit-1')
    return OrderProposal(items=list(items), **kwargs)


class TestValidateCreate:
    """Tests for create mode."""

    def test_valid_order(self, draft, now):
        assert draft.order_number == 'PO-20250529-001'
        assert draft.status == OrderStatus.DRAFT
        assert draft.sales_id == 'sales-1'
        assert draft.order_date == now

        first, second = draft.items
        assert first.unit_price == Decimal('11000.00')
        assert first.final_price == Decimal('22000.00')
        assert second.unit_price == Decimal('5000.00')
        assert second.discount_amount == Decimal('1500.00')
        assert second.final_price == Decimal('13500.00')

        assert draft.subtotal == Decimal('35500.00')
        assert draft.order_discount_amount == Decimal('1000.00')
        assert draft.total == Decimal('34500.00')
        assert totals_match(draft) is True

    def test_initial_history_entry(self, draft, now):
        assert len(draft.status_history) == 1
        entry = draft.status_history[0]
        assert entry.status == OrderStatus.DRAFT
        assert entry.user_id == 'sales-1'
        assert entry.user_name == 'Budi'
        assert entry.timestamp == now

    def test_order_number_uses_business_day(self, validator, proposal, sales, price_lists):
        """18:00 UTC is already the next day in Jakarta."""
        late = datetime(2025, 5, 29, 18, 0, tzinfo=timezone.utc)
        order = validator.validate_create(proposal, sales, price_lists, sequence=7, now=late)
        assert order.order_number == 'PO-20250530-007'

    def test_sequence_above_999(self, validator, proposal, sales, price_lists, now):
        order = validator.validate_create(proposal, sales, price_lists, sequence=1234, now=now)
        assert order.order_number == 'PO-20250529-1234'

    def test_custom_prefix(self, proposal, sales, price_lists, now):
        order = OrderValidator(order_number_prefix='SO').validate_create(proposal, sales, price_lists, now=now)
        assert order.order_number == 'SO-20250529-001'

    def test_no_items(self, validator, sales, price_lists, now):
        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(), sales, price_lists, now=now)

        assert exc_info.value.paths == ['items']
        assert exc_info.value.messages_for('items') == [MESSAGES['items_required']]

    def test_deleted_items_do_not_count(self, validator, sales, price_lists, now):
        proposal = single_line(OrderItemInput('prod-1', 1, is_deleted=True))
        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)
        assert exc_info.value.paths == ['items']

    def test_duplicate_products(self, validator, sales, price_lists, now):
        proposal = single_line(OrderItemInput('prod-1', 1), OrderItemInput('prod-1', 2))

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)

        assert exc_info.value.paths == ['items']
        assert exc_info.value.messages_for('items') == [MESSAGES['duplicate_products']]

    @pytest.mark.parametrize('quantity', [0, -1, 1.5, True, '2', None])
    def test_quantity_must_be_positive_integer(self, validator, sales, price_lists, now, quantity):
        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(OrderItemInput('prod-1', quantity)), sales, price_lists, now=now)

        assert exc_info.value.paths == ['items.0.quantity']

    def test_custom_price_zero_and_missing_reason(self, validator, sales, price_lists, now):
        """Both CUSTOM problems are reported together."""
        item = OrderItemInput('prod-1', 1, price_type=PriceType.CUSTOM, custom_price=Decimal('0'))

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(item), sales, price_lists, now=now)

        assert exc_info.value.paths == ['items.0.customPrice', 'items.0.customPriceReason']
        assert exc_info.value.messages_for('customPrice') == [MESSAGES['custom_price']]

    def test_custom_price_indonesian_format(self, validator, sales, price_lists, now):
        item = OrderItemInput('prod-1', 2, price_type=PriceType.CUSTOM,
                              custom_price='7.500,50', custom_price_reason='  Harga promosi ')

        order = validator.validate_create(single_line(item), sales, price_lists, now=now)

        line = order.items[0]
        assert line.unit_price == Decimal('7500.50')
        assert line.custom_price == Decimal('7500.50')
        assert line.custom_price_reason == 'Harga promosi'
        assert order.total == Decimal('15001.00')

    def test_custom_price_digit_limit(self, validator, admin, price_lists, now):
        item = OrderItemInput('prod-1', 1, price_type=PriceType.CUSTOM,
                              custom_price=Decimal('1000000'), custom_price_reason='Grosir besar')

        with pytest.raises(PricingOverflow) as exc_info:
            validator.validate_create(single_line(item), admin, price_lists, now=now)
        assert exc_info.value.paths == ['items.0.customPrice']

    def test_percentage_over_100_rejected_at_both_levels(self, validator, sales, price_lists, now):
        item = OrderItemInput('prod-1', 1, discount=Discount(DiscountType.PERCENTAGE, Decimal('100.01')))
        proposal = single_line(item, order_discount=Discount(DiscountType.PERCENTAGE, 150))

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)

        assert exc_info.value.paths == ['items.0.itemDiscountValue', 'orderDiscountValue']
        assert exc_info.value.messages_for('orderDiscountValue') == [MESSAGES['percentage']]

    def test_percentage_100_is_allowed(self, validator, sales, price_lists, now):
        item = OrderItemInput('prod-1', 1, discount=Discount(DiscountType.PERCENTAGE, 100))
        order = validator.validate_create(single_line(item), sales, price_lists, now=now)
        assert order.total == Decimal('0.00')

    def test_negative_discount(self, validator, sales, price_lists, now):
        item = OrderItemInput('prod-1', 1, discount=Discount(DiscountType.FIXED, Decimal('-5')))

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(item), sales, price_lists, now=now)
        assert exc_info.value.messages_for('itemDiscountValue') == [MESSAGES['non_negative']]

    def test_fixed_item_discount_above_line_is_clamped(self, validator, sales, now):
        prices = {'prod-9': PriceList(*[Decimal('100')] * 4)}
        item = OrderItemInput('prod-9', 1, discount=Discount(DiscountType.FIXED, Decimal('150')))

        order = validator.validate_create(single_line(item), sales, prices, now=now)

        assert order.items[0].discount_amount == Decimal('100.00')
        assert order.items[0].final_price == Decimal('0.00')

    def test_fixed_order_discount_above_subtotal(self, validator, sales, price_lists, now):
        proposal = single_line(OrderItemInput('prod-1', 1),
                               order_discount=Discount(DiscountType.FIXED, Decimal('20000')))

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)
        assert exc_info.value.messages_for('orderDiscountValue') == [MESSAGES['order_discount_exceeds']]

    def test_unknown_product(self, validator, sales, price_lists, now):
        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(OrderItemInput('prod-x', 1)), sales, price_lists, now=now)
        assert exc_info.value.paths == ['items.0.productId']

    def test_custom_price_on_unknown_product(self, validator, admin, price_lists, now):
        """A custom price does not stand in for a missing price list."""
        item = OrderItemInput('prod-x', 1, price_type=PriceType.CUSTOM,
                              custom_price=Decimal('9000'), custom_price_reason='Nego')

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(single_line(item), admin, price_lists, now=now)

        assert exc_info.value.paths == ['items.0.productId']
        assert exc_info.value.messages_for('productId') == [MESSAGES['product_unknown']]

    def test_sales_must_link_visit(self, validator, sales, price_lists, now):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 1)], store_id='store-1')

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)

        assert exc_info.value.paths == ['visitId']
        assert exc_info.value.messages_for('visitId') == [PERMISSION_ERRORS['VISIT_REQUIRED']]

    def test_admin_may_skip_visit(self, validator, admin, price_lists, now):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 1)], sales_id='sales-1', store_id='store-1')

        order = validator.validate_create(proposal, admin, price_lists, now=now)

        assert order.visit_id is None
        assert order.sales_id == 'sales-1'
        assert order.status_history[0].user_id == 'admin-1'
        assert order.store_id == 'store-1'

    def test_store_required_without_visit(self, validator, admin, price_lists, now):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 1)], sales_id='sales-1')

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, admin, price_lists, now=now)

        assert exc_info.value.paths == ['storeId']
        assert exc_info.value.messages_for('storeId') == [MESSAGES['store_required']]

    def test_visit_supplies_store(self, validator, sales, price_lists, now):
        order = validator.validate_create(single_line(OrderItemInput('prod-1', 1)), sales, price_lists, now=now)
        assert order.store_id is None
        assert order.visit_id == 'visit-1'

    def test_sales_cannot_create_for_someone_else(self, validator, sales, price_lists, now):
        proposal = single_line(OrderItemInput('prod-1', 1), sales_id='sales-2')
        with pytest.raises(PermissionDenied):
            validator.validate_create(proposal, sales, price_lists, now=now)

    def test_roles_without_create_permission(self, validator, manager, basic_user, price_lists, now):
        for actor in (manager, basic_user, Actor('sales-9', UserRole.SALES, is_active=False)):
            with pytest.raises(PermissionDenied):
                validator.validate_create(single_line(OrderItemInput('prod-1', 1)), actor, price_lists, now=now)

    def test_overflow_alone_raises_pricing_overflow(self, validator, admin, price_lists, now):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 10_000_000)], store_id='store-1')

        with pytest.raises(PricingOverflow) as exc_info:
            validator.validate_create(proposal, admin, price_lists, now=now)
        assert exc_info.value.paths == ['items.0.subtotal']

    def test_overflow_with_other_violations(self, validator, sales, price_lists, now):
        """Mixed problems surface as a plain ValidationFailed listing everything."""
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 10_000_000)], store_id='store-1')

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_create(proposal, sales, price_lists, now=now)

        assert type(exc_info.value) is ValidationFailed
        assert exc_info.value.paths == ['visitId', 'items.0.subtotal']

    def test_custom_price_band_enforced(self, sales, price_lists, now):
        strict = OrderValidator(enforce_custom_price_band=True)
        item = OrderItemInput('prod-1', 1, price_type=PriceType.CUSTOM,
                              custom_price=Decimal('5000'), custom_price_reason='Cuci gudang')

        with pytest.raises(ValidationFailed) as exc_info:
            strict.validate_create(single_line(item), sales, price_lists, now=now)
        assert exc_info.value.messages_for('customPrice') == ['Harga kustom terlalu rendah (minimum: Rp 6.400)']

        # Not enforced by default
        assert OrderValidator().validate_create(single_line(item), sales, price_lists, now=now)

    def test_module_level_validate(self, proposal, sales, price_lists, now):
        order = validate(proposal, ValidationMode.CREATE, sales, price_lists=price_lists, now=now)
        assert order.total == Decimal('34500.00')


class TestValidateUpdate:
    """Tests for update mode."""

    def test_owner_edits_draft(self, validator, draft, sales, price_lists):
        kept = draft.items[0]
        proposal = OrderProposal(items=[
            OrderItemInput(kept.product_id, 5, id='item-1'),
            OrderItemInput('prod-2', 3, is_deleted=True),
        ], notes='Kirim pagi')

        updated = validator.validate_update(draft, proposal, sales, price_lists)

        assert len(updated.items) == 1
        assert updated.items[0].id == 'item-1'
        assert updated.subtotal == Decimal('55000.00')
        assert updated.order_discount_amount == Decimal('0.00')
        assert updated.total == Decimal('55000.00')
        assert updated.notes == 'Kirim pagi'
        # Status and history are not touched by an edit
        assert updated.status == OrderStatus.DRAFT
        assert updated.status_history == draft.status_history
        assert updated.order_number == draft.order_number

    def test_notes_kept_when_not_provided(self, validator, draft, sales, price_lists):
        current = replace(draft, notes='Catatan lama')
        updated = validator.validate_update(current, OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                            sales, price_lists)
        assert updated.notes == 'Catatan lama'

    def test_owner_cannot_edit_approved_order(self, validator, draft, sales, price_lists):
        approved = replace(draft, status=OrderStatus.DISETUJUI)

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_update(approved, OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                      sales, price_lists)

        assert exc_info.value.paths == ['status']
        assert exc_info.value.message == PERMISSION_ERRORS['DRAFT_ONLY_EDIT']

    def test_other_sales_cannot_edit(self, validator, draft, other_sales, price_lists):
        with pytest.raises(PermissionDenied):
            validator.validate_update(draft, OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                      other_sales, price_lists)

    def test_manager_cannot_edit(self, validator, draft, manager, price_lists):
        with pytest.raises(PermissionDenied):
            validator.validate_update(draft, OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                      manager, price_lists)

    def test_admin_edits_any_status(self, validator, draft, admin, price_lists):
        delivered = replace(draft, status=OrderStatus.TERKIRIM)

        updated = validator.validate_update(delivered, OrderProposal(items=[OrderItemInput('prod-2', 2)]),
                                            admin, price_lists)

        assert updated.total == Decimal('11000.00')
        assert updated.status == OrderStatus.TERKIRIM

    def test_policy_without_override(self, draft, admin, price_lists):
        strict = OrderValidator(edit_policy=EditPolicy(override_roles=frozenset()))
        approved = replace(draft, status=OrderStatus.DISETUJUI)

        assert strict.edit_policy.can_edit(admin, approved) is False
        with pytest.raises(PermissionDenied):
            strict.validate_update(approved, OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                   admin, price_lists)

    def test_all_items_deleted(self, validator, draft, sales, price_lists):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 1, is_deleted=True)])

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_update(draft, proposal, sales, price_lists)
        assert exc_info.value.messages_for('items') == [MESSAGES['active_items_required']]

    def test_percentage_over_100_rejected_at_both_levels(self, validator, draft, sales, price_lists):
        proposal = OrderProposal(
            items=[OrderItemInput('prod-1', 1, discount=Discount(DiscountType.PERCENTAGE, Decimal('100.01')))],
            order_discount=Discount(DiscountType.PERCENTAGE, Decimal('150')),
        )

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_update(draft, proposal, sales, price_lists)

        assert exc_info.value.paths == ['items.0.itemDiscountValue', 'orderDiscountValue']
        assert exc_info.value.messages_for('orderDiscountValue') == [MESSAGES['percentage']]

    def test_duplicate_products(self, validator, draft, sales, price_lists):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', 1), OrderItemInput('prod-1', 2)])

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_update(draft, proposal, sales, price_lists)
        assert exc_info.value.paths == ['items']
        assert exc_info.value.messages_for('items') == [MESSAGES['duplicate_products']]

    def test_deleted_duplicate_is_allowed(self, validator, draft, sales, price_lists):
        """A line removed in the same edit does not clash with its replacement."""
        proposal = OrderProposal(items=[
            OrderItemInput('prod-1', 2, id='item-1', is_deleted=True),
            OrderItemInput('prod-1', 4),
        ])

        updated = validator.validate_update(draft, proposal, sales, price_lists)

        assert len(updated.items) == 1
        assert updated.items[0].quantity == 4
        assert updated.total == Decimal('44000.00')

    def test_rejected_update_leaves_order_untouched(self, validator, draft, sales, price_lists):
        proposal = OrderProposal(items=[OrderItemInput('prod-1', -1)])
        with pytest.raises(ValidationFailed):
            validator.validate_update(draft, proposal, sales, price_lists)
        assert draft.total == Decimal('34500.00')

    def test_dispatch(self, validator, draft, sales, price_lists):
        updated = validator.validate(ValidationMode.UPDATE, sales, current=draft,
                                     proposal=OrderProposal(items=[OrderItemInput('prod-1', 1)]),
                                     price_lists=price_lists)
        assert updated.total == Decimal('11000.00')


class TestValidateStatusChange:
    """Tests for status change mode."""

    def test_admin_approves(self, validator, draft, admin, now):
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.DISETUJUI, user_id=None, notes=' OK ')

        approved = validator.validate_status_change(draft, request, admin, now=now)

        assert approved.status == OrderStatus.DISETUJUI
        entry = approved.status_history[-1]
        assert entry.user_id == 'admin-1'
        assert entry.user_name == 'Admin Pusat'
        assert entry.notes == 'OK'

    @pytest.mark.parametrize('target', [OrderStatus.DISETUJUI, OrderStatus.TIDAK_TERKIRIM])
    def test_sales_cannot_change_status(self, validator, draft, sales, target):
        request = TransitionRequest(OrderStatus.DRAFT, target, 'sales-1', rejection_reason='x')
        with pytest.raises(PermissionDenied):
            validator.validate_status_change(draft, request, sales)

    def test_manager_cannot_approve(self, validator, draft, manager):
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.DISETUJUI, 'manager-1')
        with pytest.raises(PermissionDenied):
            validator.validate_status_change(draft, request, manager)

    @pytest.mark.parametrize('reason', [None, '', '   '])
    def test_rejection_needs_reason(self, validator, draft, admin, reason):
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.TIDAK_TERKIRIM, 'admin-1',
                                    rejection_reason=reason)

        with pytest.raises(ValidationFailed) as exc_info:
            validator.validate_status_change(draft, request, admin)
        assert exc_info.value.paths == ['rejectionReason']

    def test_rejection_with_reason(self, validator, draft, admin, now):
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.TIDAK_TERKIRIM, 'admin-1',
                                    rejection_reason=' Toko tutup ')

        rejected = validator.validate_status_change(draft, request, admin, now=now)

        assert rejected.rejection_reason == 'Toko tutup'
        assert rejected.rejected_by == 'admin-1'

    def test_stale_request(self, validator, draft, admin):
        approved = replace(draft, status=OrderStatus.DISETUJUI)
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.DISETUJUI, 'admin-1')

        with pytest.raises(InvalidTransition) as exc_info:
            validator.validate_status_change(approved, request, admin)
        assert exc_info.value.is_stale is True

    def test_terminal_status(self, validator, draft, admin):
        delivered = replace(draft, status=OrderStatus.TERKIRIM)
        request = TransitionRequest(OrderStatus.TERKIRIM, OrderStatus.DISETUJUI, 'admin-1')

        with pytest.raises(InvalidTransition) as exc_info:
            validator.validate_status_change(delivered, request, admin)
        assert exc_info.value.reason == InvalidTransition.ILLEGAL

    def test_module_level_validate(self, draft, admin, now):
        request = TransitionRequest(OrderStatus.DRAFT, OrderStatus.DISETUJUI, 'admin-1')
        approved = validate(request, ValidationMode.STATUS_CHANGE, admin, current=draft, now=now)
        assert approved.approved_by == 'admin-1'
