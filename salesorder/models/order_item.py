"""Order item model."""
from sqlalchemy import Column, String, Integer, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship

from salesorder.database import Base, new_uuid
from salesorder.models.enums import PriceType


class OrderItem(Base):
    """Order line with the prices resolved at the time it was accepted."""

    __tablename__ = 'order_items'

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    price_type = Column(String(12), nullable=False, default=PriceType.MODERN.value)
    unit_price = Column(Numeric(8, 2), nullable=False)
    custom_price = Column(Numeric(8, 2), nullable=True)
    custom_price_reason = Column(Text, nullable=True)

    # Item level discount
    item_discount_type = Column(String(12), nullable=True)
    item_discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    item_discount = Column(Numeric(12, 2), nullable=False, default=0)  # computed amount
    discount_description = Column(Text, nullable=True)

    subtotal = Column(Numeric(11, 2), nullable=False)
    final_price = Column(Numeric(10, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity}, final={self.final_price})>"
