"""
Availability Service

Answers "is there a free unit of this category for [check_in, check_out)?"

Two bookings conflict iff both occupy inventory (reserved or active) and
their half-open date ranges overlap:
    existing.check_in < candidate.check_out AND existing.check_out > candidate.check_in
A check-out on the same day as another check-in is not a conflict.
"""

import logging
from datetime import date
from typing import Dict, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.booking import Booking, OCCUPYING_STATUSES
from ..models.room_type import RoomType

logger = logging.getLogger(__name__)


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open interval overlap"""
    return start_a < end_b and end_a > start_b


class AvailabilityChecker:
    """Read-only queries against the booking store"""

    def __init__(self, db: Session):
        self.db = db

    def _overlapping_query(self, check_in: date, check_out: date):
        return self.db.query(Booking).filter(
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in
        )

    def count_overlapping(
        self,
        check_in: date,
        check_out: date,
        room_type: str,
        exclude_booking_id: Optional[str] = None
    ) -> int:
        """Number of occupying bookings of the category overlapping the window"""
        query = self._overlapping_query(check_in, check_out).filter(Booking.room_type == room_type)
        if exclude_booking_id:
            query = query.filter(Booking.booking_id != exclude_booking_id)
        return query.count()

    def is_available(
        self,
        check_in: date,
        check_out: date,
        room_type: RoomType,
        exclude_booking_id: Optional[str] = None
    ) -> bool:
        """
        True if at least one unit of the category is free for the whole window.

        Capacity defaults to 1, which makes this an existence check.
        """
        capacity = room_type.capacity or 1
        occupied = self.count_overlapping(check_in, check_out, room_type.name, exclude_booking_id)
        return occupied < capacity

    def unavailable_categories(self, check_in: date, check_out: date) -> Set[str]:
        """Names of categories with no free unit in the window"""
        rows = (
            self._overlapping_query(check_in, check_out)
            .with_entities(Booking.room_type, func.count(Booking.booking_id))
            .group_by(Booking.room_type)
            .all()
        )
        occupied = {name: count for name, count in rows}
        if not occupied:
            return set()

        capacities = dict(
            self.db.query(RoomType.name, RoomType.capacity)
            .filter(RoomType.name.in_(list(occupied.keys())))
            .all()
        )
        return {
            name for name, count in occupied.items()
            if count >= (capacities.get(name) or 1)
        }

    def availability_map(self, check_in: date, check_out: date) -> Dict[str, bool]:
        """Per active category: True if bookable for the window"""
        full = self.unavailable_categories(check_in, check_out)
        room_types = self.db.query(RoomType).filter(
            RoomType.is_active == True
        ).order_by(RoomType.display_order, RoomType.name).all()
        return {rt.name: rt.name not in full for rt in room_types}
