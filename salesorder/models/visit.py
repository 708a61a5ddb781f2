"""Store visit model."""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salesorder.database import Base, new_uuid


class Visit(Base):
    """
    Store visit logged by a sales user.

    At most one order can be linked to a visit (order_id is unique).
    """

    __tablename__ = 'visits'

    id = Column(String(36), primary_key=True, default=new_uuid)
    store_id = Column(String(36), nullable=False, index=True)
    sales_id = Column(String(36), nullable=False, index=True)
    visit_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    check_in_time = Column(DateTime(timezone=True), nullable=False)
    visit_duration = Column(Integer, nullable=True)  # minutes
    is_stock_checked = Column(Boolean, nullable=False, default=False)
    is_debt_collected = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='SET NULL'), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship('Order', foreign_keys=[order_id])

    def __repr__(self):
        return f"<Visit(id={self.id}, store_id={self.store_id}, sales_id={self.sales_id})>"
