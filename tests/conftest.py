"""Shared fixtures: an in-memory database and transaction factories."""

from decimal import Decimal

import pytest

from bepaid_reconciler.audit import AuditLogger
from bepaid_reconciler.config import AutolinkSettings, ImportSettings, PurgeSettings
from bepaid_reconciler.models.transaction import NormalizedStatus, ParsedTransaction
from bepaid_reconciler.services.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_logger(storage):
    return AuditLogger(storage)


@pytest.fixture
def import_settings():
    return ImportSettings(
        batch_size=2,
        auto_create_orders=True,
        create_ghost_profiles=False,
    )


@pytest.fixture
def autolink_settings():
    return AutolinkSettings(limit=200, batch_size=2)


@pytest.fixture
def purge_settings():
    return PurgeSettings(limit=5000, batch_size=2)


@pytest.fixture
def make_tx():
    """Factory for successful BYN payments; keyword arguments override fields."""
    def factory(uid: str = "uid-1", **fields) -> ParsedTransaction:
        data = {
            "uid": uid,
            "status": "Успешный",
            "status_normalized": NormalizedStatus.SUCCESSFUL,
            "amount": Decimal("100.00"),
            "currency": "BYN",
        }
        data.update(fields)
        return ParsedTransaction(**data)
    return factory
