"""
Room Type Model

Inventory class for bookings. Room types are soft-deactivated only:
bookings reference them by name, so rows are never hard-deleted while
referenced.
"""

from datetime import datetime
from sqlalchemy import Column, String, Numeric, DateTime, Integer, Boolean
from ..database import Base


class RoomType(Base):
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)

    # Nightly price = price + (holiday_surcharge if surcharge day)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    holiday_surcharge = Column(Numeric(10, 2), nullable=False, default=0)

    # Units of this category that can be occupied at once
    capacity = Column(Integer, nullable=False, default=1)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    display_order = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<RoomType {self.name} base={self.price} surcharge={self.holiday_surcharge}>"
