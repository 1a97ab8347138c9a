"""Tests for pre-reconciliation validation."""

from datetime import datetime
from decimal import Decimal

import pytest

from bepaid_reconciler.config import ImportSettings
from bepaid_reconciler.models.reports import IssueSeverity
from bepaid_reconciler.models.transaction import NormalizedStatus
from bepaid_reconciler.validation import TransactionValidator


NOW = datetime(2026, 1, 20, 12, 0)


@pytest.fixture
def validator():
    return TransactionValidator(ImportSettings(default_currency="BYN", future_date_tolerance_days=1))


class TestTransactionValidator:
    """Tests for TransactionValidator."""

    def test_clean_record(self, validator, make_tx):
        """Test that a normal payment passes."""
        tx = make_tx(customer_email="a@example.com", paid_at=datetime(2026, 1, 19, 10, 0))
        result = validator.validate([tx], now=NOW)
        assert result.issues == []
        assert result.transactions == [tx]
        assert validator.get_summary(result) == "All checks passed."

    def test_duplicate_uid_keeps_first(self, validator, make_tx):
        """Test that the second occurrence of a UID is dropped with an error."""
        first = make_tx("dup", customer_email="a@example.com", amount=Decimal("10"))
        second = make_tx("dup", customer_email="a@example.com", amount=Decimal("20"))
        result = validator.validate([first, second], now=NOW)

        assert result.transactions == [first]
        assert result.has_errors
        assert result.errors[0].issue_type == "duplicate"
        assert result.errors[0].severity == IssueSeverity.ERROR

    def test_successful_zero_amount_warns(self, validator, make_tx):
        """Test that a successful payment with no money is flagged."""
        tx = make_tx(customer_email="a@example.com", amount=Decimal("0"))
        result = validator.validate([tx], now=NOW)
        assert [i.issue_type for i in result.warnings] == ["suspicious_value"]
        assert result.transactions == [tx]

    def test_failed_zero_amount_is_fine(self, validator, make_tx):
        """Test that declined attempts may have zero amount."""
        tx = make_tx(
            customer_email="a@example.com",
            amount=Decimal("0"),
            status_normalized=NormalizedStatus.FAILED,
        )
        assert validator.validate([tx], now=NOW).issues == []

    def test_unmatchable_warns(self, validator, make_tx):
        """Test that a record with no email and no holder is flagged."""
        result = validator.validate([make_tx()], now=NOW)
        assert [i.issue_type for i in result.warnings] == ["unmatchable"]

    def test_future_date_warns(self, validator, make_tx):
        """Test that dates beyond the tolerance are flagged."""
        tx = make_tx(card_holder="ANNA IVANOVA", paid_at=datetime(2026, 1, 25, 10, 0))
        result = validator.validate([tx], now=NOW)
        assert [i.field for i in result.warnings] == ["paid_at"]

    def test_future_date_within_tolerance(self, validator, make_tx):
        """Test that clock skew within a day is accepted."""
        tx = make_tx(card_holder="ANNA IVANOVA", paid_at=datetime(2026, 1, 21, 10, 0))
        assert validator.validate([tx], now=NOW).issues == []

    def test_foreign_currency_is_info(self, validator, make_tx):
        """Test that another currency is informational only."""
        tx = make_tx(card_holder="ANNA IVANOVA", currency="USD")
        result = validator.validate([tx], now=NOW)
        assert len(result.issues) == 1
        assert result.issues[0].severity == IssueSeverity.INFO
        assert not result.warnings

    def test_summary_lists_problems(self, validator, make_tx):
        """Test the operator summary text."""
        result = validator.validate([make_tx("a"), make_tx("a")], now=NOW)
        summary = validator.get_summary(result)
        assert "Dropped 1 duplicate rows" in summary
        assert "a: No email and no card holder" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
