"""
Pricing engine - unit price resolution, line and order totals.

All arithmetic is Decimal with ROUND_HALF_UP at 2 places. Digit ceilings
match the persisted column precision; exceeding one raises PricingOverflow.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from salesorder.exceptions import PricingOverflow
from salesorder.models.enums import DiscountType, PriceType
from salesorder.models.records import Discount, OrderTotals, PriceList, PricedItem
from salesorder.utils.formatters import money_idr

MONEY = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

# (max_digits, decimal_places) per field
UNIT_PRICE_DIGITS = (8, 2)
CUSTOM_PRICE_DIGITS = (8, 2)
DISCOUNT_VALUE_DIGITS = (10, 2)
ITEM_DISCOUNT_AMOUNT_DIGITS = (12, 2)
ITEM_SUBTOTAL_DIGITS = (11, 2)
ITEM_FINAL_PRICE_DIGITS = (10, 2)
ORDER_SUBTOTAL_DIGITS = (11, 2)
ORDER_DISCOUNT_AMOUNT_DIGITS = (10, 2)
ORDER_TOTAL_DIGITS = (11, 2)

# Maximum list price per tier: 999.999,99
MAX_LIST_PRICE = Decimal('999999.99')

# Custom price band relative to the list (20% under grosir, 20% over modern)
CUSTOM_PRICE_MIN_RATIO = Decimal('0.8')
CUSTOM_PRICE_MAX_RATIO = Decimal('1.2')


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half up."""
    return Decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def fits_digits(value: Decimal, max_digits: int, decimal_places: int) -> bool:
    """True if |value| fits NUMERIC(max_digits, decimal_places)."""
    limit = Decimal(10) ** (max_digits - decimal_places)
    return abs(value) < limit


def check_digits(value: Decimal, digits: Tuple[int, int], path: Tuple) -> Decimal:
    max_digits, decimal_places = digits
    if not fits_digits(value, max_digits, decimal_places):
        raise PricingOverflow.for_field(path, max_digits, decimal_places, value)
    return value


def resolve_unit_price(price_type: PriceType, price_list: Optional[PriceList],
                       custom_price: Optional[Decimal] = None) -> Decimal:
    """
    Resolve the unit price of a line.

    CUSTOM uses custom_price as-is; any other type reads the product's tier.
    Presence and positivity of custom_price is checked by the validator.
    """
    if price_type == PriceType.CUSTOM:
        if custom_price is None:
            raise ValueError('CUSTOM price type requires custom_price')
        return round_money(custom_price)
    if price_list is None:
        raise ValueError(f'Price list required for price type {price_type.value}')
    return round_money(price_list.price_for(price_type))


def compute_discount_amount(base: Decimal, discount: Optional[Discount]) -> Decimal:
    """
    Discount amount against a base.

    PERCENTAGE: base * value / 100
    FIXED: min(value, base), a fixed discount never takes the base below 0
    """
    if discount is None or discount.type is None:
        return ZERO
    value = Decimal(discount.value or 0)
    if discount.type == DiscountType.PERCENTAGE:
        amount = round_money(base * value / HUNDRED)
    else:
        amount = round_money(min(value, base))
    return max(amount, ZERO)


def price_item(quantity: int, price_type: PriceType, price_list: Optional[PriceList],
               custom_price: Optional[Decimal] = None, discount: Optional[Discount] = None,
               path: Tuple = ()) -> PricedItem:
    """
    Compute unit price, subtotal, discount amount and final price of a line.

    Raises:
        PricingOverflow: if a computed value exceeds its column ceiling
    """
    unit_price = check_digits(
        resolve_unit_price(price_type, price_list, custom_price),
        UNIT_PRICE_DIGITS, path + ('unitPrice',)
    )
    subtotal = check_digits(round_money(unit_price * quantity), ITEM_SUBTOTAL_DIGITS, path + ('subtotal',))
    discount_amount = check_digits(
        compute_discount_amount(subtotal, discount),
        ITEM_DISCOUNT_AMOUNT_DIGITS, path + ('itemDiscountAmount',)
    )
    final_price = check_digits(
        round_money(subtotal - discount_amount),
        ITEM_FINAL_PRICE_DIGITS, path + ('finalPrice',)
    )
    return PricedItem(
        unit_price=unit_price,
        subtotal=subtotal,
        discount_amount=discount_amount,
        final_price=final_price,
    )


def price_order(line_amounts: Iterable[Decimal], order_discount: Optional[Discount] = None) -> OrderTotals:
    """
    Aggregate line final prices into order totals.

    The order subtotal is the sum of line final prices (line discounts
    already applied); the order discount is applied on top of it.
    """
    subtotal = check_digits(
        round_money(sum(line_amounts, ZERO)), ORDER_SUBTOTAL_DIGITS, ('subtotal',)
    )
    discount_amount = check_digits(
        compute_discount_amount(subtotal, order_discount),
        ORDER_DISCOUNT_AMOUNT_DIGITS, ('orderDiscountAmount',)
    )
    total = check_digits(
        max(round_money(subtotal - discount_amount), ZERO), ORDER_TOTAL_DIGITS, ('total',)
    )
    return OrderTotals(subtotal=subtotal, discount_amount=discount_amount, total=total)


def validate_price_hierarchy(price_list: PriceList) -> bool:
    """Ensure grosir <= semi-grosir <= retail <= modern."""
    return (
        price_list.grosir_price <= price_list.semi_grosir_price
        <= price_list.retail_price <= price_list.modern_price
    )


def check_custom_price_band(custom_price: Decimal, price_list: PriceList) -> Optional[str]:
    """
    Check a custom price against the product's list.

    Returns:
        None when the price is within [80% grosir, 120% modern], otherwise
        the message to report.
    """
    min_allowed = round_money(price_list.grosir_price * CUSTOM_PRICE_MIN_RATIO)
    max_allowed = round_money(price_list.modern_price * CUSTOM_PRICE_MAX_RATIO)

    if custom_price < min_allowed:
        return f'Harga kustom terlalu rendah (minimum: {money_idr(min_allowed)})'
    if custom_price > max_allowed:
        return f'Harga kustom terlalu tinggi (maksimum: {money_idr(max_allowed)})'
    return None

