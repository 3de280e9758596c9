"""
Product and price tier database models.

Products are never deleted: deactivation keeps their price history so
trips that snapshotted a tier stay auditable.
"""

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class Product(Base):
    """Product model with ordered price tiers."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    prices = relationship(
        "ProductPrice",
        order_by="ProductPrice.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def active_prices(self):
        """Tiers that can still be chosen for new trips."""
        return [price for price in self.prices if price.is_active]

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', active={self.is_active})>"


class ProductPrice(Base):
    """
    Price tier model (e.g. "wholesale", "retail").

    Value is fixed-point; trips copy it into their line items at open time.
    Removing a tier only deactivates it, so line items that reference it
    keep a valid foreign key.
    """
    __tablename__ = "product_prices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    label = Column(String(30), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<ProductPrice(id={self.id}, product_id={self.product_id}, label='{self.label}', value={self.value})>"
