"""
Holiday Calendar Model

Dates carrying the holiday surcharge. Weekends are computed from settings;
a row with is_surcharge=False overrides a computed weekend as a regular day.
"""

from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Integer, Boolean
from ..database import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, autoincrement=True)
    holiday_date = Column(Date, nullable=False, unique=True, index=True)
    holiday_name = Column(String(100), nullable=True)
    is_surcharge = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Holiday {self.holiday_date} surcharge={self.is_surcharge}>"
