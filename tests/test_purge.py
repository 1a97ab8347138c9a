"""Tests for the file import purge."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from bepaid_reconciler.config import PurgeSettings
from bepaid_reconciler.models.audit import AuditEventType
from bepaid_reconciler.models.reports import PurgeRequest
from bepaid_reconciler.reconciliation import ImportPurger


JAN_10 = datetime(2026, 1, 10, 9, 0)


def _seed(storage):
    storage.add_queue_row(id="a", bepaid_uid="a", amount=Decimal("10"), source="file_import", created_at=JAN_10)
    storage.add_queue_row(id="b", bepaid_uid="b", amount=Decimal("20"), source="file_import",
                          status="error", created_at=JAN_10)
    storage.add_queue_row(id="c", bepaid_uid="c", amount=Decimal("30"), source="file_import", created_at=JAN_10)
    storage.add_queue_row(id="d", bepaid_uid="d", amount=Decimal("40"), source="file_import",
                          matched_order_id="order-1", created_at=JAN_10)
    storage.add_payment(provider_payment_id="c", amount=Decimal("30"))
    storage.add_queue_row(id="done", bepaid_uid="done", source="file_import", status="completed", created_at=JAN_10)
    storage.add_queue_row(id="hook", bepaid_uid="hook", source="webhook", created_at=JAN_10)
    storage.add_queue_row(id="feb", bepaid_uid="feb", source="file_import", created_at=datetime(2026, 2, 1))


def _run(storage, audit_logger, settings, **fields):
    request = PurgeRequest(date_from=date(2026, 1, 1), date_to=date(2026, 1, 31), **fields)
    return asyncio.run(ImportPurger(storage, audit_logger, settings).run(request))


class TestImportPurger:
    """Tests for ImportPurger."""

    def test_dry_run(self, storage, audit_logger, purge_settings):
        """Test counts and conflicts without touching rows."""
        _seed(storage)

        report = _run(storage, audit_logger, purge_settings)

        assert report.dry_run
        assert report.total_found == 4
        assert report.eligible_for_cancel == 2
        assert report.with_conflicts == 2
        assert report.total_amount == Decimal("30")
        assert {r.id for r in report.examples} == {"a", "b"}
        assert {(r.id, r.reason) for r in report.conflicts} == {
            ("c", "payment_exists"),
            ("d", "order_linked"),
        }
        assert report.cancelled == 0
        assert storage.queue["a"]["status"] == "pending"

    def test_execute_cancels(self, storage, audit_logger, purge_settings):
        """Test that eligible rows are cancelled and nothing is deleted."""
        _seed(storage)
        storage.add_queue_row(id="e", bepaid_uid="e", source="file_import", created_at=JAN_10)

        report = _run(storage, audit_logger, purge_settings, dry_run=False)

        assert report.cancelled == 3
        assert {k for k, r in storage.queue.items() if r["status"] == "cancelled"} == {"a", "b", "e"}
        assert storage.queue["c"]["status"] == "pending"
        assert storage.queue["d"]["status"] == "pending"
        assert storage.queue["feb"]["status"] == "pending"
        assert storage.queue["hook"]["status"] == "pending"
        assert len(storage.queue) == 8

    def test_status_filter(self, storage, audit_logger, purge_settings):
        """Test that only the requested statuses are considered."""
        _seed(storage)

        report = _run(storage, audit_logger, purge_settings, statuses=["error"])

        assert report.total_found == 1
        assert [r.id for r in report.examples] == ["b"]

    def test_last_day_included(self, storage, audit_logger, purge_settings):
        """Test that rows created late on date_to are in range."""
        storage.add_queue_row(id="late", source="file_import", created_at=datetime(2026, 1, 31, 23, 30))

        report = _run(storage, audit_logger, purge_settings)

        assert report.total_found == 1

    def test_too_many_records(self, storage, audit_logger):
        """Test that a run over the limit stops before cancelling."""
        _seed(storage)
        settings = PurgeSettings(limit=3, batch_size=2)

        report = _run(storage, audit_logger, settings, dry_run=False)

        assert report.stop_reason == "too_many_records"
        assert report.cancelled == 0
        assert storage.queue["a"]["status"] == "pending"

    def test_request_limit_overrides_settings(self, storage, audit_logger, purge_settings):
        """Test the per-request limit."""
        _seed(storage)

        report = _run(storage, audit_logger, purge_settings, limit=2)

        assert report.stop_reason == "too_many_records"

    def test_audit_event(self, storage, audit_logger, purge_settings):
        """Test that each run leaves one purge event."""
        _seed(storage)

        _run(storage, audit_logger, purge_settings, dry_run=False)

        events = [e for e in storage.audit_events if e.event_type == AuditEventType.PURGE_COMPLETED]
        assert len(events) == 1
        assert events[0].details["cancelled"] == 2
        assert events[0].details["dry_run"] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
