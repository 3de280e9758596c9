"""
Trip line item database model.

One (product, price tier, quantity) entry of a trip's cargo manifest.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, UniqueConstraint
from dispatch_backend.app.db.session import Base


class TripLineItem(Base):
    """
    Trip line item model.

    `unit_price` is copied from the chosen price tier at open time and never
    follows later price changes. `closing_quantity` and `revenue` are set
    only when the trip is reconciled.
    """
    __tablename__ = "trip_line_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)  # Manifest order (1, 2, 3, ...)

    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    price_tier_id = Column(Integer, ForeignKey('product_prices.id'), nullable=False)

    opening_quantity = Column(Integer, nullable=False)
    closing_quantity = Column(Integer, nullable=True)

    unit_price = Column(Numeric(12, 2), nullable=False)
    revenue = Column(Numeric(14, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint('trip_id', 'product_id', 'price_tier_id', name='uq_trip_line_product_tier'),
    )

    @property
    def units_sold(self):
        if self.closing_quantity is None:
            return None
        return self.opening_quantity - self.closing_quantity

    def __repr__(self):
        return f"<TripLineItem(id={self.id}, trip_id={self.trip_id}, product_id={self.product_id}, opening={self.opening_quantity})>"
