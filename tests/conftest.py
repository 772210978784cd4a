"""
Shared fixtures: an in-memory SQLite database seeded with room types and
notification policies, plus recording collaborators for notifications.
"""

import os
import sys
from datetime import datetime
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Booking, RoomType, NotificationPolicy
from app.services.notification_policies import seed_default_policies


class RecordingNotifier:
    """Notifier double that remembers every message"""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send(self, destination, subject, body):
        if not self.succeed:
            return False
        self.sent.append((destination, subject, body))
        return True

    def subjects(self):
        return [subject for _, subject, _ in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    session.add_all([
        RoomType(
            name="standard", display_name="Standard Room",
            price=Decimal("2000"), holiday_surcharge=Decimal("500"), capacity=1, display_order=1,
        ),
        RoomType(
            name="family", display_name="Family Suite",
            price=Decimal("3500"), holiday_surcharge=Decimal("800"), capacity=2, display_order=2,
        ),
    ])
    session.commit()
    seed_default_policies(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_booking(db):
    """Insert a booking row directly, bypassing the lifecycle rules"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            booking_id=f"BKT{counter['n']:05d}",
            check_in_date=datetime(2024, 2, 1).date(),
            check_out_date=datetime(2024, 2, 3).date(),
            room_type="standard",
            guest_name="Guest",
            guest_email="guest@example.com",
            guest_phone="0912345678",
            nights=2,
            price_per_night=Decimal("2000"),
            total_amount=Decimal("4000"),
            final_amount=Decimal("4000"),
            payment_method="bank_transfer",
            status="reserved",
            payment_status="pending",
            created_at=datetime(2024, 1, 1, 0, 0),
        )
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def policy(db):
    """Look up (and optionally edit) a seeded policy row"""
    def _policy(kind, **changes):
        row = db.query(NotificationPolicy).filter(NotificationPolicy.kind == kind).first()
        for key, value in changes.items():
            setattr(row, key, value)
        if changes:
            db.commit()
        return row

    return _policy
