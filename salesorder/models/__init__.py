"""Models package - exports all SQLAlchemy models and domain enums."""
from salesorder.models.enums import (
    UserRole, OrderStatus, PriceType, DiscountType, StoreType, ProductType,
    ORDER_STATUS_LABELS, PRICE_TYPE_LABELS,
)

from salesorder.models.product import Product, PriceList
from salesorder.models.visit import Visit
from salesorder.models.order import Order
from salesorder.models.order_item import OrderItem
from salesorder.models.purchase_order import PurchaseOrder

__all__ = [
    # Enums
    'UserRole', 'OrderStatus', 'PriceType', 'DiscountType', 'StoreType', 'ProductType',
    'ORDER_STATUS_LABELS', 'PRICE_TYPE_LABELS',
    # Tables
    'Product', 'PriceList', 'Visit', 'Order', 'OrderItem', 'PurchaseOrder',
]
