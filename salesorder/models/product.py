"""Product and price list models."""
from decimal import Decimal

from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salesorder.database import Base, new_uuid
from salesorder.models.records import PriceList as PriceListRecord


class Product(Base):
    """Product sold to stores."""

    __tablename__ = 'products'

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(200), nullable=False)
    code = Column(String(64), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default='BISCUIT')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    price_list = relationship('PriceList', uselist=False, back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', code='{self.code}')>"


class PriceList(Base):
    """
    Four-tier list price of a product.

    Each tier is NUMERIC(8,2): at most 999.999,99.
    """

    __tablename__ = 'price_lists'

    id = Column(String(36), primary_key=True, default=new_uuid)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False, unique=True)
    grosir_price = Column(Numeric(8, 2), nullable=False)
    semi_grosir_price = Column(Numeric(8, 2), nullable=False)
    retail_price = Column(Numeric(8, 2), nullable=False)
    modern_price = Column(Numeric(8, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    product = relationship('Product', back_populates='price_list')

    def to_record(self) -> PriceListRecord:
        return PriceListRecord(
            grosir_price=Decimal(self.grosir_price),
            semi_grosir_price=Decimal(self.semi_grosir_price),
            retail_price=Decimal(self.retail_price),
            modern_price=Decimal(self.modern_price),
        )

    def __repr__(self):
        return (
            f"<PriceList(product_id={self.product_id}, grosir={self.grosir_price}, "
            f"semi_grosir={self.semi_grosir_price}, retail={self.retail_price}, modern={self.modern_price})>"
        )
