"""
Tests for scheduled exports: definitions, the tick and run history.
"""
from datetime import timedelta
from unittest.mock import Mock

import pytest

from bulkio.adapters.modules import SQLAlchemyModuleAdapter
from bulkio.core.exceptions import (
    AdapterUnavailableError,
    DeliveryError,
    InvalidJobStateError,
    InvalidQueryError,
    InvalidScheduleError,
)
from bulkio.core.timeutil import utcnow
from bulkio.models.erp import Warehouse
from bulkio.models.export_job import ExportJob, ExportStatus
from bulkio.models.scheduled_export import RunStatus, ScheduledExportRun
from bulkio.ports.mail import MailSender
from bulkio.services import scheduler_service
from bulkio.services.scheduler_service import ScheduledExportService


@pytest.fixture
def mail_sender():
    return Mock(spec=MailSender)


@pytest.fixture
def service(db, registry_loader, mail_sender):
    return ScheduledExportService(db, mail_sender=mail_sender, loader=registry_loader)


@pytest.fixture
def warehouses(db):
    db.add_all([
        Warehouse(code="WH-1", name="Main", location="Tarkwa"),
        Warehouse(code="WH-2", name="North", location="Kumasi"),
    ])
    db.commit()


@pytest.fixture
def due_schedule(db, service):
    scheduled = service.create(
        name="Weekly warehouses",
        module="warehouses",
        schedule="weekly",
        recipients=["Ops@Example.com"],
        columns=["code", "name"],
    )
    scheduled.next_run_at = utcnow() - timedelta(minutes=1)
    db.commit()
    return scheduled


class TestDefinitions:
    def test_create_computes_next_run(self, service):
        now = utcnow()
        scheduled = service.create(
            name="Daily", module="warehouses", schedule="daily", recipients=["ops@example.com"],
        )
        assert scheduled.is_active is True
        assert scheduled.next_run_at > now
        assert scheduled.columns == ["code", "name", "location", "description", "is_active"]
        assert scheduled.recipients == ["ops@example.com"]

    def test_invalid_schedule(self, service):
        with pytest.raises(InvalidScheduleError):
            service.create(name="Bad", module="warehouses", schedule="fortnightly", recipients=["a@example.com"])

    def test_invalid_recipients(self, service):
        with pytest.raises(InvalidScheduleError):
            service.create(name="Bad", module="warehouses", schedule="daily", recipients=["nobody"])

    def test_unknown_columns(self, service):
        with pytest.raises(InvalidQueryError):
            service.create(
                name="Bad", module="warehouses", schedule="daily",
                recipients=["a@example.com"], columns=["colour"],
            )

    def test_bad_filter_value(self, service):
        with pytest.raises(InvalidQueryError, match="is_active"):
            service.create(
                name="Bad", module="warehouses", schedule="daily",
                recipients=["a@example.com"], filters={"is_active": "maybe"},
            )

    def test_update_rejects_bad_filter_value(self, service, due_schedule):
        with pytest.raises(InvalidQueryError, match="is_active"):
            service.update(due_schedule.id, filters={"is_active": "maybe"})

    def test_unsupported_format(self, service):
        with pytest.raises(InvalidScheduleError, match="format"):
            service.create(
                name="Bad", module="warehouses", schedule="daily",
                recipients=["a@example.com"], format="xlsx",
            )

    def test_update_recomputes_next_run(self, service, due_schedule):
        updated = service.update(due_schedule.id, schedule="0 6 * * *", name="Morning")
        assert updated.name == "Morning"
        assert updated.schedule == "0 6 * * *"
        assert updated.next_run_at > utcnow()
        assert updated.next_run_at.hour == 6

    def test_deactivate_and_reactivate(self, service, due_schedule):
        assert service.set_active(due_schedule.id, False).is_active is False
        reactivated = service.set_active(due_schedule.id, True)
        assert reactivated.is_active is True
        assert reactivated.next_run_at > utcnow()


class TestTick:
    def test_due_schedule_runs_and_delivers(self, db, service, mail_sender, warehouses, due_schedule):
        now = utcnow()
        runs = service.tick(now)

        assert len(runs) == 1
        run = runs[0]
        assert run.status == RunStatus.SUCCESS
        assert run.delivered_at is not None
        assert run.delivery_error is None

        job = db.get(ExportJob, run.export_job_id)
        assert job.status == ExportStatus.COMPLETED
        assert job.total_rows == 2

        kwargs = mail_sender.send.call_args.kwargs
        assert kwargs["recipients"] == ["ops@example.com"]
        assert kwargs["attachment"].filename == job.file_name
        assert kwargs["attachment"].content.startswith(b"code,name\n")

        db.refresh(due_schedule)
        assert due_schedule.last_run_at == now
        assert due_schedule.next_run_at > now

    def test_not_due_or_inactive_schedules_are_ignored(self, db, service, mail_sender, due_schedule):
        service.set_active(due_schedule.id, False)
        assert service.tick() == []

        service.set_active(due_schedule.id, True)  # next run moves into the future
        assert service.tick() == []
        mail_sender.send.assert_not_called()

    def test_export_failure_recorded_as_failed_run(self, db, service, mail_sender, due_schedule, monkeypatch):
        def unavailable(self):
            raise AdapterUnavailableError("database is down")

        monkeypatch.setattr(SQLAlchemyModuleAdapter, "check_ready", unavailable)
        now = utcnow()
        run = service.tick(now)[0]

        assert run.status == RunStatus.FAILURE
        assert "database is down" in run.error_message
        assert run.export_job_id is not None
        assert db.get(ExportJob, run.export_job_id).status == ExportStatus.FAILED
        mail_sender.send.assert_not_called()

        db.refresh(due_schedule)
        assert due_schedule.next_run_at > now

    def test_delivery_failure_keeps_success(self, service, mail_sender, warehouses, due_schedule):
        mail_sender.send.side_effect = DeliveryError("mailbox full")

        run = service.tick()[0]

        assert run.status == RunStatus.SUCCESS
        assert run.delivery_error == "mailbox full"
        assert run.delivered_at is None

    def test_schedule_in_flight_is_skipped(self, db, service, due_schedule):
        assert scheduler_service._acquire(due_schedule.id)
        try:
            assert service.tick() == []
            with pytest.raises(InvalidJobStateError):
                service.run_now(due_schedule.id)
        finally:
            scheduler_service._release(due_schedule.id)

        assert db.query(ScheduledExportRun).count() == 0
        assert len(service.tick()) == 1

    def test_run_now_ignores_next_run_at(self, service, warehouses):
        scheduled = service.create(
            name="Monthly", module="warehouses", schedule="monthly", recipients=["a@example.com"],
        )
        run = service.run_now(scheduled.id)
        assert run.status == RunStatus.SUCCESS

    def test_run_history_newest_first(self, service, warehouses, due_schedule):
        first = service.run_now(due_schedule.id)
        second = service.run_now(due_schedule.id)

        assert [r.id for r in service.list_runs(due_schedule.id)] == [second.id, first.id]
