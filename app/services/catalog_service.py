"""
Catalog Service

Operator maintenance of the data pricing and scheduling read from:
- Room types (create, update, soft-deactivate)
- Holiday calendar (add single dates or ranges, remove a date)
- Notification timing (hold period, offsets, send hours)

Room types are never hard-deleted: bookings reference them by name.
"""

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.booking import NotificationKind, SCHEDULED_KINDS
from ..models.holiday import Holiday
from ..models.notification_policy import NotificationPolicy
from ..models.room_type import RoomType
from ..schemas.catalog import (
    RoomTypeCreate, RoomTypeUpdate, HolidayCreate, NotificationPolicyUpdate
)
from ..utils.db_helpers import commit_or_raise
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logging_config import get_logger
from .notification_policies import get_policy

logger = get_logger(__name__)


class CatalogService:

    def __init__(self, db: Session):
        self.db = db

    # ---------- Room types ----------

    def list_room_types(self, include_inactive: bool = True) -> List[RoomType]:
        query = self.db.query(RoomType)
        if not include_inactive:
            query = query.filter(RoomType.is_active == True)
        return query.order_by(RoomType.display_order, RoomType.id).all()

    def get_room_type(self, room_type_id: int) -> RoomType:
        room_type = self.db.query(RoomType).filter(RoomType.id == room_type_id).first()
        if not room_type:
            raise NotFoundError(
                f"Room type {room_type_id} not found",
                details={"room_type_id": room_type_id},
            )
        return room_type

    def create_room_type(self, data: RoomTypeCreate) -> RoomType:
        existing = self.db.query(RoomType).filter(RoomType.name == data.name).first()
        if existing:
            raise ConflictError(
                f"Room type '{data.name}' already exists",
                details={"name": data.name, "room_type_id": existing.id},
            )

        room_type = RoomType(**data.model_dump())
        self.db.add(room_type)
        commit_or_raise(self.db, "create_room_type")
        self.db.refresh(room_type)

        logger.info(f"Room type created: {room_type.name} (price={room_type.price}, capacity={room_type.capacity})")
        return room_type

    def update_room_type(self, room_type_id: int, data: RoomTypeUpdate) -> RoomType:
        room_type = self.get_room_type(room_type_id)

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None:
                raise ValidationError(f"{field} cannot be null", details={"field": field})
            setattr(room_type, field, value)

        commit_or_raise(self.db, "update_room_type")
        self.db.refresh(room_type)

        logger.info(f"Room type updated: {room_type.name} fields={sorted(changes)}")
        return room_type

    def deactivate_room_type(self, room_type_id: int) -> RoomType:
        """Soft delete; already-inactive rows are returned unchanged"""
        room_type = self.get_room_type(room_type_id)
        if room_type.is_active:
            room_type.is_active = False
            commit_or_raise(self.db, "deactivate_room_type")
            self.db.refresh(room_type)
            logger.info(f"Room type deactivated: {room_type.name}")
        return room_type

    # ---------- Holidays ----------

    def list_holidays(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> List[Holiday]:
        query = self.db.query(Holiday)
        if date_from:
            query = query.filter(Holiday.holiday_date >= date_from)
        if date_to:
            query = query.filter(Holiday.holiday_date <= date_to)
        return query.order_by(Holiday.holiday_date).all()

    def add_holidays(self, data: HolidayCreate) -> Tuple[List[Holiday], List[date]]:
        """
        Add one date or an inclusive range.

        A single date that is already in the calendar is a conflict; inside
        a range, existing dates are skipped and reported back.
        """
        days = data.dates()
        existing = {
            row.holiday_date
            for row in self.db.query(Holiday).filter(Holiday.holiday_date.in_(days)).all()
        }

        if data.holiday_date is not None and existing:
            raise ConflictError(
                f"{data.holiday_date.isoformat()} is already in the holiday calendar",
                details={"holiday_date": data.holiday_date.isoformat()},
            )

        added = []
        for day in days:
            if day in existing:
                continue
            holiday = Holiday(
                holiday_date=day,
                holiday_name=data.holiday_name,
                is_surcharge=data.is_surcharge,
            )
            self.db.add(holiday)
            added.append(holiday)

        if added:
            commit_or_raise(self.db, "add_holidays")
            for holiday in added:
                self.db.refresh(holiday)

        logger.info(f"Holidays added: {len(added)}, skipped: {len(existing)}")
        return added, sorted(existing)

    def delete_holiday(self, holiday_date: date) -> None:
        holiday = self.db.query(Holiday).filter(Holiday.holiday_date == holiday_date).first()
        if not holiday:
            raise NotFoundError(
                f"{holiday_date.isoformat()} is not in the holiday calendar",
                details={"holiday_date": holiday_date.isoformat()},
            )
        self.db.delete(holiday)
        commit_or_raise(self.db, "delete_holiday")
        logger.info(f"Holiday removed: {holiday_date.isoformat()}")

    # ---------- Notification timing ----------

    def list_policies(self) -> List[NotificationPolicy]:
        return self.db.query(NotificationPolicy).order_by(NotificationPolicy.kind).all()

    def update_policy(self, kind: str, data: NotificationPolicyUpdate) -> NotificationPolicy:
        try:
            notification_kind = NotificationKind(kind)
        except ValueError:
            notification_kind = None
        if notification_kind not in SCHEDULED_KINDS:
            raise NotFoundError(
                f"No timing policy for notification kind '{kind}'",
                details={"kind": kind, "scheduled_kinds": [k.value for k in SCHEDULED_KINDS]},
            )

        policy = get_policy(self.db, notification_kind)
        if policy is None:
            raise NotFoundError(f"Policy for '{kind}' has not been seeded", details={"kind": kind})

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None:
                raise ValidationError(f"{field} cannot be null", details={"field": field})

        # payment_reminder's offset is the hold period; zero would expire
        # transfers at creation
        if (
            notification_kind == NotificationKind.PAYMENT_REMINDER
            and changes.get("offset_days") is not None
            and changes["offset_days"] < 1
        ):
            raise ValidationError(
                "Hold period must be at least one day",
                details={"kind": kind, "offset_days": changes["offset_days"]},
            )

        for field, value in changes.items():
            setattr(policy, field, value)

        commit_or_raise(self.db, "update_policy")
        self.db.refresh(policy)

        logger.info(
            f"Notification policy updated: {policy.kind} enabled={policy.is_enabled} "
            f"offset={policy.offset_days} hour={policy.send_hour}"
        )
        return policy
