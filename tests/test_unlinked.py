"""Tests for the unlinked payments report."""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from bepaid_reconciler.reconciliation import UnlinkedPaymentsReporter


def _seed(storage):
    storage.add_payment(card_last4="1234", card_brand="Visa", amount=Decimal("10"),
                        paid_at=datetime(2026, 1, 5))
    storage.add_payment(card_last4="1234", card_brand="visa", amount=Decimal("20"),
                        paid_at=datetime(2026, 1, 7))
    storage.add_payment(card_last4="1234", card_brand="visa", amount=Decimal("99"),
                        profile_id="p-linked")
    storage.add_queue_row(card_last4="1234", card_brand="VISA", amount=Decimal("5"),
                          paid_at=None, created_at=datetime(2026, 1, 9))
    storage.add_payment(card_last4="5555", card_brand="mastercard", amount=Decimal("7"))
    storage.add_payment(card_last4=None, card_brand="visa", amount=Decimal("1"))
    storage.add_queue_row(card_last4="9999", card_brand=None, amount=Decimal("1"))


class TestAggregates:
    """Tests for per-card aggregation."""

    def test_groups_by_card(self, storage):
        """Test counts, amounts, last seen and ordering."""
        _seed(storage)

        report = asyncio.run(UnlinkedPaymentsReporter(storage).aggregates())

        assert [(c.last4, c.brand) for c in report.cards] == [("1234", "visa"), ("5555", "mastercard")]
        visa = report.cards[0]
        assert visa.unlinked_payments_count == 2
        assert visa.unlinked_queue_count == 1
        assert visa.total_count == 3
        assert visa.payments_amount == Decimal("30")
        assert visa.queue_amount == Decimal("5")
        assert visa.total_amount == Decimal("35")
        assert visa.last_seen_at == datetime(2026, 1, 9)
        assert not visa.collision_risk

        assert report.total_cards == 2
        assert report.total_payments == 3
        assert report.total_queue == 1
        assert report.total_amount == Decimal("42")

    def test_collision_risk(self, storage):
        """Test that a card owned by two contacts is flagged."""
        _seed(storage)
        storage.add_profile(id="p1", user_id="user-1")
        storage.add_card_link(card_last4="1234", card_brand="VISA", card_holder="A", profile_id="p2")
        storage.add_payment_method(last4="1234", brand="visa", user_id="user-1")

        report = asyncio.run(UnlinkedPaymentsReporter(storage).aggregates())

        flags = {c.last4: c.collision_risk for c in report.cards}
        assert flags == {"1234": True, "5555": False}

    def test_single_owner_is_not_collision(self, storage):
        """Test that two links to the same contact are fine."""
        _seed(storage)
        storage.add_profile(id="p1", user_id="user-1")
        storage.add_card_link(card_last4="1234", card_brand="visa", card_holder="A", profile_id="p1")
        storage.add_payment_method(last4="1234", brand="visa", user_id="user-1")

        report = asyncio.run(UnlinkedPaymentsReporter(storage).aggregates())

        assert not report.cards[0].collision_risk

    def test_empty(self, storage):
        """Test a database where everything is linked."""
        report = asyncio.run(UnlinkedPaymentsReporter(storage).aggregates())
        assert report.cards == []
        assert report.total_amount == Decimal("0")


class TestDetails:
    """Tests for the rows of one card."""

    def test_details_sorted_newest_first(self, storage):
        """Test both sources, brand case and undated rows last."""
        _seed(storage)
        storage.add_queue_row(card_last4="1234", card_brand="visa", amount=Decimal("3"),
                              paid_at=datetime(2026, 1, 6))

        details = asyncio.run(UnlinkedPaymentsReporter(storage).details("1234", "VISA"))

        assert details.brand == "visa"
        assert [(i.source, i.amount) for i in details.items] == [
            ("payments_v2", Decimal("20")),
            ("queue", Decimal("3")),
            ("payments_v2", Decimal("10")),
            ("queue", Decimal("5")),
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
