"""Tests for card-based autolinking."""

import asyncio
from decimal import Decimal

import pytest

from bepaid_reconciler.models.audit import AuditEventType
from bepaid_reconciler.models.reports import AutolinkRequest
from bepaid_reconciler.reconciliation import CardAutolinker


def _request(**fields) -> AutolinkRequest:
    data = {"profile_id": "target", "card_last4": "1234", "card_brand": "visa"}
    data.update(fields)
    return AutolinkRequest(**data)


def _run(storage, audit_logger, settings, request):
    return asyncio.run(CardAutolinker(storage, audit_logger, settings).run(request))


def _seed_card(storage):
    storage.add_payment(id="pay-free-1", card_last4="1234", card_brand="Visa", amount=Decimal("10"))
    storage.add_payment(id="pay-free-2", card_last4="1234", card_brand="visa", amount=Decimal("20"))
    storage.add_payment(id="pay-mine", card_last4="1234", card_brand="visa", profile_id="target")
    storage.add_payment(id="pay-other", card_last4="1234", card_brand="visa", profile_id="someone")
    storage.add_payment(id="pay-mc", card_last4="1234", card_brand="mastercard")
    storage.add_queue_row(id="q-free", card_last4="1234", card_brand="visa", amount=Decimal("5"))
    storage.add_queue_row(id="q-other", card_last4="1234", card_brand="visa", matched_profile_id="someone")


class TestValidation:
    """Tests for request validation."""

    def test_missing_params(self, storage, audit_logger, autolink_settings):
        """Test that profile, last4 and brand are required."""
        result = _run(storage, audit_logger, autolink_settings, _request(card_brand=""))
        assert result.status == "error"
        assert result.stop_reason == "missing_required_params"
        assert not result.ok

    def test_invalid_last4(self, storage, audit_logger, autolink_settings):
        """Test that last4 must be four digits."""
        result = _run(storage, audit_logger, autolink_settings, _request(card_last4="12a4"))
        assert result.status == "error"
        assert result.stop_reason == "invalid_last4"


class TestCollisionGuard:
    """Tests for the card collision stop."""

    def test_card_linked_to_other_profile(self, storage, audit_logger, autolink_settings):
        """Test that a card link to someone else stops the run."""
        _seed_card(storage)
        storage.add_card_link(card_last4="1234", card_brand="VISA", card_holder="X", profile_id="someone")

        result = _run(storage, audit_logger, autolink_settings, _request(dry_run=False))

        assert result.status == "stop"
        assert result.stop_reason == "card_collision_last4_brand"
        assert storage.payments["pay-free-1"].get("profile_id") is None
        stopped = [e for e in storage.audit_events if e.event_type == AuditEventType.AUTOLINK_STOPPED]
        assert stopped[0].error_code == "card_collision_last4_brand"

    def test_payment_method_of_other_user(self, storage, audit_logger, autolink_settings):
        """Test that an active saved card of another user stops the run."""
        storage.add_profile(id="someone", user_id="user-2")
        storage.add_payment_method(last4="1234", brand="Visa", user_id="user-2")

        result = _run(storage, audit_logger, autolink_settings, _request())

        assert result.stop_reason == "card_collision_last4_brand"

    def test_own_links_and_other_brands_allowed(self, storage, audit_logger, autolink_settings):
        """Test that the target's own link and other brands do not collide."""
        storage.add_card_link(card_last4="1234", card_brand="visa", card_holder="X", profile_id="target")
        storage.add_card_link(card_last4="1234", card_brand="mastercard", card_holder="Y", profile_id="someone")
        storage.add_profile(id="someone", user_id="user-2")
        storage.add_payment_method(last4="1234", brand="visa", user_id="user-2", status="inactive")

        result = _run(storage, audit_logger, autolink_settings, _request())

        assert result.status == "success"


class TestAutolink:
    """Tests for candidate selection and execution."""

    def test_dry_run(self, storage, audit_logger, autolink_settings):
        """Test that a dry run counts candidates and writes nothing."""
        _seed_card(storage)

        result = _run(storage, audit_logger, autolink_settings, _request())

        assert result.ok
        assert result.dry_run
        assert result.stats.candidates_payments == 2
        assert result.stats.candidates_queue == 1
        assert result.stats.skipped_already_linked == 1
        assert result.stats.conflicts == 2
        assert result.stats.updated_payments_profile == 0
        assert {s.id for s in result.payments_updated} == {"pay-free-1", "pay-free-2"}
        assert {c.reason for c in result.conflicts} == {"profile_id_mismatch", "matched_profile_id_mismatch"}
        assert storage.payments["pay-free-1"].get("profile_id") is None
        completed = [e for e in storage.audit_events if e.event_type == AuditEventType.AUTOLINK_COMPLETED]
        assert completed[0].details["dry_run"] is True

    def test_execute(self, storage, audit_logger, autolink_settings):
        """Test that execute links only unlinked rows, in batches."""
        _seed_card(storage)
        storage.add_payment(id="pay-free-3", card_last4="1234", card_brand="visa")

        result = _run(storage, audit_logger, autolink_settings, _request(dry_run=False))

        assert result.status == "success"
        assert result.stats.updated_payments_profile == 3
        assert result.stats.updated_queue_profile == 1
        assert storage.payments["pay-free-1"]["profile_id"] == "target"
        assert storage.payments["pay-free-3"]["profile_id"] == "target"
        assert storage.payments["pay-other"]["profile_id"] == "someone"
        assert storage.payments["pay-mc"].get("profile_id") is None
        assert storage.queue["q-free"]["matched_profile_id"] == "target"
        assert storage.queue["q-other"]["matched_profile_id"] == "someone"

    def test_provider_token(self, storage, audit_logger, autolink_settings):
        """Test token matches, including ones on an unrelated card."""
        storage.add_payment(id="tok-free", card_last4="0000", payment_token="tok")
        storage.add_payment(id="tok-other", card_last4="0000", payment_token="tok", profile_id="someone")

        result = _run(storage, audit_logger, autolink_settings, _request(provider_token="tok", dry_run=False))

        assert result.stats.candidates_payments == 1
        assert storage.payments["tok-free"]["profile_id"] == "target"
        assert [c.reason for c in result.conflicts] == ["profile_id_mismatch_token"]

    def test_token_match_not_counted_twice(self, storage, audit_logger, autolink_settings):
        """Test that a payment found by token and by card is one candidate."""
        storage.add_payment(id="both", card_last4="1234", card_brand="visa", payment_token="tok")

        result = _run(storage, audit_logger, autolink_settings, _request(provider_token="tok"))

        assert result.stats.candidates_payments == 1

    def test_too_many_candidates(self, storage, audit_logger, autolink_settings):
        """Test the candidate limit stop."""
        _seed_card(storage)

        result = _run(storage, audit_logger, autolink_settings, _request(limit=2, dry_run=False))

        assert result.status == "stop"
        assert result.stop_reason == "too_many_candidates"
        assert result.stats.candidates_payments + result.stats.candidates_queue == 3
        assert storage.payments["pay-free-1"].get("profile_id") is None

    def test_unsafe_allow_large(self, storage, audit_logger, autolink_settings):
        """Test that the limit can be overridden explicitly."""
        _seed_card(storage)

        result = _run(
            storage, audit_logger, autolink_settings,
            _request(limit=2, unsafe_allow_large=True, dry_run=False),
        )

        assert result.status == "success"
        assert result.stats.updated_payments_profile == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
