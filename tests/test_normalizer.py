"""Tests for row normalization."""

from datetime import datetime
from decimal import Decimal

import pytest

from bepaid_reconciler.models.transaction import NormalizedStatus, ParsedTransaction
from bepaid_reconciler.parsing import (
    NoTransactionsError,
    is_fee_transaction,
    normalize_status,
    parse_date,
    parse_number,
    parse_row,
    parse_rows,
)


class TestParseNumber:
    """Tests for localized number parsing."""

    def test_comma_decimal(self):
        """Test a comma decimal separator."""
        assert parse_number("12,50") == Decimal("12.50")

    def test_thousands_and_currency(self):
        """Test spaces and currency suffixes are stripped."""
        assert parse_number("1 234,56") == Decimal("1234.56")
        assert parse_number("12.50 BYN") == Decimal("12.50")

    def test_negative(self):
        """Test negative amounts."""
        assert parse_number("-5,00") == Decimal("-5.00")

    def test_empty_and_garbage(self):
        """Test values that are not numbers."""
        assert parse_number("") is None
        assert parse_number(None) is None
        assert parse_number("n/a") is None


class TestParseDate:
    """Tests for export date parsing."""

    def test_russian_format(self):
        """Test DD.MM.YYYY HH:MM:SS."""
        assert parse_date("15.01.2026 10:30:45") == datetime(2026, 1, 15, 10, 30, 45)

    def test_russian_format_without_seconds(self):
        """Test DD.MM.YYYY HH:MM."""
        assert parse_date("15.01.2026 10:30") == datetime(2026, 1, 15, 10, 30)

    def test_iso_with_offset_keeps_wall_clock(self):
        """Test that the offset is dropped, not applied."""
        assert parse_date("2026-01-15 10:30:00 +0300") == datetime(2026, 1, 15, 10, 30)

    def test_isoformat_fallback(self):
        """Test ISO strings with a T separator."""
        assert parse_date("2026-01-15T10:30:00+03:00") == datetime(2026, 1, 15, 10, 30)

    def test_invalid(self):
        """Test that unparseable dates become None."""
        assert parse_date("yesterday") is None
        assert parse_date("32.13.2026 10:00") is None
        assert parse_date("") is None


class TestNormalizeStatus:
    """Tests for status normalization."""

    def test_successful(self):
        """Test Russian and English success wording."""
        assert normalize_status("Успешный", "Платеж", "") == NormalizedStatus.SUCCESSFUL
        assert normalize_status("successful", "Payment", "") == NormalizedStatus.SUCCESSFUL

    def test_failed(self):
        """Test failure wording in the status column."""
        assert normalize_status("Неуспешный", "Платеж", "") == NormalizedStatus.FAILED
        assert normalize_status("failed", "Payment", "") == NormalizedStatus.FAILED

    def test_decline_message_overrides_status(self):
        """Test that a decline message wins over a success status."""
        status = normalize_status("Успешный", "Платеж", "Card declined by issuer")
        assert status == NormalizedStatus.FAILED

    def test_refund_and_cancel_types(self):
        """Test that the transaction type wins over everything."""
        assert normalize_status("Успешный", "Возврат средств", "") == NormalizedStatus.REFUND
        assert normalize_status("Успешный", "Отмена", "") == NormalizedStatus.CANCEL

    def test_unknown_is_pending(self):
        """Test the fallback."""
        assert normalize_status("Unknown", "Платеж", "") == NormalizedStatus.PENDING


class TestParseRow:
    """Tests for full row normalization."""

    def test_russian_row(self):
        """Test a typical card payment row."""
        tx = parse_row({
            "UID": "abc-1",
            "Статус": "Успешный",
            "Тип транзакции": "Платеж",
            "Сумма": "12,50",
            "Валюта": "BYN",
            "Дата оплаты": "15.01.2026 10:30:00",
            "E-mail": "Anna@Example.com",
            "Карта": "4111 11** **** 1234",
            "Владелец карты": "ANNA IVANOVA",
            "Описание": "Курс",
            "3-D Secure": "Да",
        })
        assert tx.uid == "abc-1"
        assert tx.amount == Decimal("12.50")
        assert tx.status_normalized == NormalizedStatus.SUCCESSFUL
        assert tx.paid_at == datetime(2026, 1, 15, 10, 30)
        assert tx.customer_email == "anna@example.com"
        assert tx.card_last4 == "1234"
        assert tx.card_brand == "visa"
        assert tx.card_holder == "ANNA IVANOVA"
        assert tx.description == "Курс"
        assert tx.three_d_secure is True

    def test_english_aliases(self):
        """Test that English column names are recognised."""
        tx = parse_row({"UID": "x", "Status": "Successful", "Amount": "5.00", "Card": "5100 00** **** 9876"})
        assert tx.amount == Decimal("5.00")
        assert tx.card_last4 == "9876"
        assert tx.card_brand == "mastercard"

    def test_brand_from_payment_method(self):
        """Test that the payment method is used when the mask has no scheme digit."""
        tx = parse_row({"UID": "x", "Способ оплаты": "ERIP"})
        assert tx.card_brand == "erip"
        assert tx.card_last4 is None

    def test_row_without_uid(self):
        """Test that rows without a UID are skipped."""
        assert parse_row({"Статус": "Успешный"}) is None

    def test_parse_rows_skips_invalid(self):
        """Test that an invalid row is skipped, not fatal."""
        rows = [
            {"UID": "ok"},
            {"UID": "bad", "Валюта": "TOOLONG"},
            {"Статус": "no uid"},
        ]
        parsed = parse_rows(rows)
        assert [t.uid for t in parsed] == ["ok"]

    def test_parse_rows_nothing_recognised(self):
        """Test that a file with no transactions is an error."""
        with pytest.raises(NoTransactionsError):
            parse_rows([{"Foo": "bar"}])


class TestFeeDetection:
    """Tests for fee/service row detection."""

    def test_regular_payment(self):
        """Test that a normal payment is not a fee."""
        assert not is_fee_transaction(ParsedTransaction(uid="a", amount=Decimal("50")))

    def test_small_verification_charge(self):
        """Test that sub-1.00 payments are card verifications."""
        assert is_fee_transaction(ParsedTransaction(uid="a", amount=Decimal("0.50")))

    def test_cancel_and_refund(self):
        """Test that cancellations are fees and refunds are not."""
        assert is_fee_transaction(ParsedTransaction(uid="a", transaction_type="Отмена", amount=Decimal("50")))
        assert not is_fee_transaction(ParsedTransaction(uid="b", transaction_type="Возврат", amount=Decimal("0.5")))

    def test_other_types(self):
        """Test that non-payment types are fees."""
        assert is_fee_transaction(ParsedTransaction(uid="a", transaction_type="Комиссия", amount=Decimal("50")))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
