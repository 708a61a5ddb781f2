"""Order model."""
from sqlalchemy import Column, String, Numeric, DateTime, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salesorder.database import Base, new_uuid
from salesorder.models.enums import OrderStatus


class Order(Base):
    """
    Sales order (PO-YYYYMMDD-NNN).

    status_history holds the append-only list of
    {status, timestamp, userId, userName?, notes?} entries.
    """

    __tablename__ = 'orders'

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_number = Column(String(32), nullable=False, unique=True)
    order_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    status = Column(String(20), nullable=False, default=OrderStatus.DRAFT.value, index=True)

    subtotal = Column(Numeric(11, 2), nullable=False)
    total = Column(Numeric(11, 2), nullable=False)

    # Order level discount
    order_discount_type = Column(String(12), nullable=True)  # 'PERCENTAGE' or 'FIXED' or NULL
    order_discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    order_discount = Column(Numeric(10, 2), nullable=False, default=0)  # computed amount
    order_discount_description = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(String(36), nullable=True)
    status_history = Column(JSON, nullable=True)

    # Users and stores live outside this schema; only their ids are kept
    sales_id = Column(String(36), nullable=False, index=True)
    store_id = Column(String(36), nullable=True, index=True)
    visit_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.position')
    purchase_orders = relationship('PurchaseOrder', back_populates='order', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}', total={self.total})>"
