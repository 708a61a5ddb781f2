"""Purchase order document model."""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salesorder.database import Base, new_uuid


class PurchaseOrder(Base):
    """
    Record of a generated purchase order document.

    file_url stays empty until the host stores the rendered file.
    """

    __tablename__ = 'purchase_orders'

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_number = Column(String(32), nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(512), nullable=True)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    admin_id = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship('Order', back_populates='purchase_orders')

    def __repr__(self):
        return f"<PurchaseOrder(id={self.id}, order_number='{self.order_number}', file='{self.file_name}')>"
