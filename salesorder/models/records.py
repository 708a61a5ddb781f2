"""
Plain records consumed and produced by the order engine.

The engine never touches the database: the host maps its rows to these
records (see order_service) and persists whatever the engine returns.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from salesorder.models.enums import DiscountType, OrderStatus, PriceType, UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing a request."""
    id: Optional[str]
    role: UserRole
    is_active: bool = True
    name: Optional[str] = None


@dataclass(frozen=True)
class PriceList:
    """Four-tier list price of a product."""
    grosir_price: Decimal
    semi_grosir_price: Decimal
    retail_price: Decimal
    modern_price: Decimal

    def price_for(self, price_type: PriceType) -> Decimal:
        if price_type == PriceType.GROSIR:
            return self.grosir_price
        if price_type == PriceType.SEMI_GROSIR:
            return self.semi_grosir_price
        if price_type == PriceType.RETAIL:
            return self.retail_price
        if price_type == PriceType.MODERN:
            return self.modern_price
        raise ValueError(f'Price type {price_type} has no list price')

    def as_tuple(self) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
        return (self.grosir_price, self.semi_grosir_price, self.retail_price, self.modern_price)


@dataclass(frozen=True)
class Discount:
    type: DiscountType
    value: Any = Decimal('0')
    description: Optional[str] = None


@dataclass
class OrderItemInput:
    """An order line as proposed by a client (before pricing)."""
    product_id: Optional[str]
    quantity: Any
    price_type: PriceType = PriceType.MODERN
    custom_price: Any = None
    custom_price_reason: Optional[str] = None
    discount: Optional[Discount] = None
    id: Optional[str] = None
    is_deleted: bool = False


@dataclass(frozen=True)
class PricedItem:
    """Monetary figures of a single line."""
    unit_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    final_price: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderItem:
    """A validated, priced order line."""
    product_id: str
    quantity: int
    price_type: PriceType
    unit_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    final_price: Decimal
    custom_price: Optional[Decimal] = None
    custom_price_reason: Optional[str] = None
    discount: Optional[Discount] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One entry of the append-only status history."""
    status: OrderStatus
    timestamp: datetime
    user_id: str
    user_name: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Persisted shape: {status, timestamp, userId, userName?, notes?}."""
        data = {
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat(),
            'userId': self.user_id,
        }
        if self.user_name is not None:
            data['userName'] = self.user_name
        if self.notes is not None:
            data['notes'] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusHistoryEntry':
        timestamp = data['timestamp']
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            status=OrderStatus(data['status']),
            timestamp=timestamp,
            user_id=data['userId'],
            user_name=data.get('userName'),
            notes=data.get('notes'),
        )


@dataclass(frozen=True)
class Order:
    """Normalized order snapshot accepted by the engine."""
    order_number: str
    status: OrderStatus
    items: Tuple[OrderItem, ...]
    subtotal: Decimal
    order_discount_amount: Decimal
    total: Decimal
    sales_id: str
    store_id: Optional[str] = None
    visit_id: Optional[str] = None
    order_discount: Optional[Discount] = None
    status_history: Tuple[StatusHistoryEntry, ...] = ()
    order_date: Optional[datetime] = None
    notes: Optional[str] = None
    delivery_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_editable(self) -> bool:
        return self.status == OrderStatus.DRAFT


@dataclass
class OrderProposal:
    """Create/Update payload for an order."""
    items: List[OrderItemInput] = field(default_factory=list)
    sales_id: Optional[str] = None
    store_id: Optional[str] = None
    visit_id: Optional[str] = None
    order_discount: Optional[Discount] = None
    notes: Optional[str] = None
    delivery_date: Optional[datetime] = None

    @property
    def active_items(self) -> List[OrderItemInput]:
        return [item for item in self.items if not item.is_deleted]


@dataclass
class TransitionRequest:
    """Status change request; current_status is the status the caller last saw."""
    current_status: OrderStatus
    new_status: OrderStatus
    user_id: Optional[str]
    user_name: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    delivery_date: Optional[datetime] = None
