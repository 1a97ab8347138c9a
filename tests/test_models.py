"""
Tests for bePaid Reconciler models

Test strategy:
1. Unit tests for individual components (models, parsers, matchers)
2. Flow tests against the in-memory storage
3. No real database or provider calls in tests
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from bepaid_reconciler.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    ImportStatus,
    ImportSummary,
    ImportValidationResult,
    IssueSeverity,
    MatchedBy,
    NormalizedStatus,
    ParsedTransaction,
    PaymentRecord,
    PurgeReport,
    QueueRecord,
    RawTransaction,
    ReconciliationReport,
    ReconciliationStats,
    ValidationIssue,
)


class TestTransactionModels:
    """Tests for the transaction model."""

    def test_minimal_transaction(self):
        """Test that only uid is required."""
        tx = ParsedTransaction(uid="abc")
        assert tx.amount == Decimal("0")
        assert tx.currency == "BYN"
        assert tx.status_normalized == NormalizedStatus.PENDING
        assert tx.matched_by == MatchedBy.NONE
        assert tx.import_status == ImportStatus.PENDING

    def test_empty_uid_rejected(self):
        """Test that an empty uid is rejected."""
        with pytest.raises(ValueError):
            ParsedTransaction(uid="")

    def test_email_is_lowercased(self):
        """Test that emails are normalized for comparison."""
        tx = ParsedTransaction(uid="a", customer_email="  Anna@Example.COM ")
        assert tx.customer_email == "anna@example.com"

    def test_card_last4_must_be_digits(self):
        """Test that a malformed last4 is rejected."""
        with pytest.raises(ValueError):
            ParsedTransaction(uid="a", card_last4="12a4")

    def test_customer_full_name(self):
        """Test joining first and last name."""
        tx = ParsedTransaction(uid="a", customer_name="Anna", customer_surname="Ivanova")
        assert tx.customer_full_name == "Anna Ivanova"
        assert ParsedTransaction(uid="b").customer_full_name is None

    def test_payload_excludes_bookkeeping(self):
        """Test that raw_payload only describes provider data."""
        tx = ParsedTransaction(
            uid="a",
            amount=Decimal("12.50"),
            paid_at=datetime(2026, 1, 15, 10, 30),
            existing_record={"id": "x"},
            import_error="boom",
        )
        payload = tx.to_payload()
        assert payload["uid"] == "a"
        assert payload["amount"] == "12.50"
        assert payload["paid_at"] == "2026-01-15T10:30:00"
        assert "existing_record" not in payload
        assert "import_error" not in payload
        assert "customer_email" not in payload

    def test_normalized_status_values(self):
        """Test the statuses the normalizer can produce."""
        assert {s.value for s in NormalizedStatus} == {
            "successful", "failed", "pending", "refund", "cancel",
        }

    def test_raw_transaction_is_successful(self):
        """Test provider status check on raw API transactions."""
        assert RawTransaction(uid="a", status="Successful").is_successful
        assert not RawTransaction(uid="b", status="failed").is_successful


class TestRecordModels:
    """Tests for database row models."""

    def test_queue_record_ignores_unknown_columns(self):
        """Test that extra database columns do not break loading."""
        row = QueueRecord.model_validate({
            "id": "q1",
            "bepaid_uid": "u1",
            "amount": "10.00",
            "some_new_column": 1,
        })
        assert row.amount == Decimal("10.00")
        assert row.status == "pending"
        assert row.raw_payload == {}

    def test_queue_record_null_columns(self):
        """Test that NULL columns fall back to the field defaults."""
        row = QueueRecord.model_validate({
            "id": "q1",
            "currency": None,
            "status": None,
            "is_fee": None,
            "attempts": None,
            "raw_payload": None,
        })
        assert row.currency == "BYN"
        assert row.status == "pending"
        assert row.is_fee is False
        assert row.attempts == 0
        assert row.raw_payload == {}

    def test_queue_record_legacy_status(self):
        """Test that older normalized statuses load as plain text."""
        row = QueueRecord.model_validate({"id": "q1", "status_normalized": "succeeded"})
        assert row.status_normalized == "succeeded"

    def test_payment_record_null_columns(self):
        """Test a payment row with NULL amount and currency."""
        payment = PaymentRecord.model_validate({
            "id": "p1",
            "amount": None,
            "currency": None,
            "order": None,
        })
        assert payment.amount == Decimal("0")
        assert payment.currency == "BYN"
        assert payment.order is None

    def test_missing_id_still_rejected(self):
        """Test that a NULL primary key is an error."""
        with pytest.raises(ValidationError):
            QueueRecord.model_validate({"id": None})


class TestReportModels:
    """Tests for report and summary models."""

    def test_reconciliation_report_select(self):
        """Test that matches are never selected for import."""
        report = ReconciliationReport(
            total_in_file=4,
            new=[ParsedTransaction(uid="n")],
            updates=[ParsedTransaction(uid="u")],
            matches=[ParsedTransaction(uid="m")],
            conflicts=[ParsedTransaction(uid="c")],
        )
        assert [t.uid for t in report.select()] == ["n", "u"]
        assert [t.uid for t in report.select(updates=False, conflicts=True)] == ["n", "c"]
        assert report.counts() == {
            "total_in_file": 4, "new": 1, "updates": 1, "matches": 1, "conflicts": 1,
        }

    def test_import_summary_record(self):
        """Test that created orders also count as imported."""
        summary = ImportSummary(total=3)
        for uid, status in (
            ("a", ImportStatus.ORDER_CREATED),
            ("b", ImportStatus.EXISTS),
            ("c", ImportStatus.ERROR),
        ):
            summary.record(ParsedTransaction(uid=uid, import_status=status))

        assert summary.imported == 1
        assert summary.orders_created == 1
        assert summary.exists == 1
        assert summary.errors == 1
        assert summary.error_details == [{"uid": "c", "error": "Unknown error"}]
        assert "records" not in summary.counts()

    def test_validation_result_has_errors(self):
        """Test error and warning split."""
        result = ImportValidationResult(issues=[
            ValidationIssue(uid="a", field="uid", issue_type="duplicate",
                            message="dup", severity=IssueSeverity.ERROR),
            ValidationIssue(uid="b", field="amount", issue_type="suspicious_value",
                            message="zero", severity=IssueSeverity.WARNING),
        ])
        assert result.has_errors
        assert len(result.errors) == 1
        assert len(result.warnings) == 1

    def test_stats_difference(self):
        """Test the computed difference between provider and system totals."""
        stats = ReconciliationStats(
            bepaid_total=Decimal("150.00"),
            system_total=Decimal("100.00"),
        )
        assert stats.difference == Decimal("50.00")
        assert stats.model_dump()["difference"] == Decimal("50.00")

    def test_purge_audit_details_exclude_samples(self):
        """Test that purge audit details carry counts only."""
        details = PurgeReport(dry_run=True, total_found=3).audit_details()
        assert details["total_found"] == 3
        assert "examples" not in details
        assert "conflicts" not in details


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test basic AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to a structured log dict."""
        event = AuditEvent(
            event_type=AuditEventType.FILE_PARSED,
            description="Parsed",
            details={"row_count": 3},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "file_parsed"
        assert log_dict["details"] == {"row_count": 3}

    def test_audit_event_to_db_row(self):
        """Test conversion to an audit_logs row with JSON-safe meta."""
        event = AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            description="Done",
            details={"amount": Decimal("1.50")},
        )
        row = event.to_db_row()
        assert row["action"] == "import_completed"
        assert row["id"] == str(event.event_id)
        assert row["meta"] == {"amount": "1.50"}

    def test_builder_import_started(self):
        """Test AuditEventBuilder.import_started."""
        correlation_id = uuid4()
        event = AuditEventBuilder.import_started("export.csv", 2048, correlation_id)
        assert event.event_type == AuditEventType.IMPORT_STARTED
        assert event.correlation_id == correlation_id
        assert event.details["file_size_bytes"] == 2048
        assert event.is_user_action

    def test_builder_import_completed_with_errors_is_warning(self):
        """Test that an import with failed records is a warning."""
        event = AuditEventBuilder.import_completed({"imported": 5, "errors": 1}, None)
        assert event.severity == AuditSeverity.WARNING
        assert "1 errors" in event.description

    def test_builder_autolink_stopped(self):
        """Test that a stopped autolink carries the stop reason."""
        event = AuditEventBuilder.autolink_finished(
            profile_id="p1",
            dry_run=True,
            stop_reason="too_many_candidates",
            stats={"candidates_payments": 300},
        )
        assert event.event_type == AuditEventType.AUTOLINK_STOPPED
        assert event.error_code == "too_many_candidates"
        assert event.details["dry_run"] is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
