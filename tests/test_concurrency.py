"""
Concurrency Tests for Race Condition Prevention

Tests cover:
- Row locking per dialect
- Optimistic version checks mapped to ConflictError
- Storage failures mapped to IntegrationError with a rollback
- Periodic job wiring (single instance, coalesced)
"""

import pytest
from unittest.mock import MagicMock, patch

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


class TestRowLocking:

    def test_acquire_row_lock_uses_for_update_on_postgres(self):
        from app.utils.db_helpers import acquire_row_lock
        from app.models.room_type import RoomType

        db = MagicMock()
        db.bind.dialect.name = 'postgresql'

        filter_mock = MagicMock()
        db.query.return_value.filter.return_value = filter_mock
        filter_mock.with_for_update.return_value.first.return_value = MagicMock()

        acquire_row_lock(db, RoomType, RoomType.name == 'standard')

        filter_mock.with_for_update.assert_called_once_with()

    def test_acquire_row_lock_skips_locking_on_sqlite(self):
        from app.utils.db_helpers import acquire_row_lock
        from app.models.room_type import RoomType

        db = MagicMock()
        db.bind.dialect.name = 'sqlite'

        filter_mock = MagicMock()
        db.query.return_value.filter.return_value = filter_mock

        acquire_row_lock(db, RoomType, RoomType.name == 'standard')

        filter_mock.with_for_update.assert_not_called()
        filter_mock.first.assert_called_once()


class TestCommitOrRaise:

    def test_stale_data_is_conflict(self):
        from app.utils.db_helpers import commit_or_raise
        from app.utils.exceptions import ConflictError

        db = MagicMock()
        db.commit.side_effect = StaleDataError("version mismatch")

        with pytest.raises(ConflictError):
            commit_or_raise(db, "confirm_payment")
        db.rollback.assert_called_once()

    def test_driver_failure_is_integration_error(self):
        from app.utils.db_helpers import commit_or_raise
        from app.utils.exceptions import IntegrationError

        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

        with pytest.raises(IntegrationError) as exc_info:
            commit_or_raise(db, "create_booking")
        assert exc_info.value.details == {"operation": "create_booking"}
        db.rollback.assert_called_once()


class TestPeriodicJobs:

    def test_jobs_registered_once_and_coalesced(self):
        from app.services import scheduler

        fake = MagicMock()
        fake.running = False
        with patch.object(scheduler, "BackgroundScheduler", return_value=fake), \
                patch.object(scheduler, "_scheduler", None):
            assert scheduler.start_scheduler() is True

        job_ids = [call.kwargs["id"] for call in fake.add_job.call_args_list]
        assert job_ids == [scheduler.NOTIFICATION_JOB_ID, scheduler.EXPIRATION_JOB_ID]
        for call in fake.add_job.call_args_list:
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True
        fake.start.assert_called_once()

    def test_job_failure_is_recorded_and_session_closed(self):
        from app.services import scheduler

        session = MagicMock()
        with patch.object(scheduler, "SessionLocal", return_value=session), \
                patch.object(scheduler, "ExpirationSweeper") as sweeper_cls:
            sweeper_cls.return_value.run.side_effect = OperationalError("SELECT", {}, Exception("down"))
            result = scheduler.run_expiration_job()

        assert "error" in result
        session.close.assert_called_once()
        assert "error" in scheduler.get_scheduler_status()["last_runs"][scheduler.EXPIRATION_JOB_ID]

    def test_unknown_job_id(self):
        from app.services.scheduler import trigger_job_now

        with pytest.raises(ValueError):
            trigger_job_now("price_sync")
