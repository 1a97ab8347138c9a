"""
Unlinked Payments Report

Groups payments and queue rows that no contact owns yet by the card
they were paid with, so an operator can link a whole card at once.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog

from bepaid_reconciler.matching.contacts import normalize_brand
from bepaid_reconciler.models.reports import (
    UnlinkedCardAggregation,
    UnlinkedDetails,
    UnlinkedPaymentDetail,
    UnlinkedReport,
)
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

DETAILS_LIMIT = 100


def _later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a.replace(tzinfo=None), b.replace(tzinfo=None))


class UnlinkedPaymentsReporter:
    """
    Aggregates unlinked payments per card.

    Usage:
        reporter = UnlinkedPaymentsReporter(storage)
        report = await reporter.aggregates()
        details = await reporter.details("1234", "visa")
    """

    def __init__(self, storage: ReconciliationStorageInterface):
        self._storage = storage

    async def aggregates(self) -> UnlinkedReport:
        """
        Build per-card aggregates of unlinked payments and queue rows.

        Rows without a last4 or a brand cannot be attributed to a card
        and are left out.
        """
        payments = await self._storage.list_payments(unlinked_only=True)
        queue = await self._storage.list_queue(unlinked_only=True)

        groups: dict[str, UnlinkedCardAggregation] = {}

        def group_for(last4: str, brand: str) -> UnlinkedCardAggregation:
            key = f"{last4}|{brand.lower()}"
            if key not in groups:
                groups[key] = UnlinkedCardAggregation(last4=last4, brand=brand.lower())
            return groups[key]

        for p in payments:
            if not p.card_last4 or not p.card_brand:
                continue
            agg = group_for(p.card_last4, p.card_brand)
            agg.unlinked_payments_count += 1
            agg.payments_amount += p.amount
            agg.last_seen_at = _later(agg.last_seen_at, p.paid_at)

        for q in queue:
            if not q.card_last4 or not q.card_brand:
                continue
            agg = group_for(q.card_last4, q.card_brand)
            agg.unlinked_queue_count += 1
            agg.queue_amount += q.amount or Decimal("0")
            agg.last_seen_at = _later(agg.last_seen_at, q.paid_at or q.created_at)

        for agg in groups.values():
            agg.total_count = agg.unlinked_payments_count + agg.unlinked_queue_count
            agg.total_amount = agg.payments_amount + agg.queue_amount

        await self._mark_collisions(list(groups.values()))

        cards = sorted(groups.values(), key=lambda a: a.total_count, reverse=True)
        report = UnlinkedReport(
            cards=cards,
            total_cards=len(cards),
            total_payments=sum(a.unlinked_payments_count for a in cards),
            total_queue=sum(a.unlinked_queue_count for a in cards),
            total_amount=sum((a.total_amount for a in cards), Decimal("0")),
        )
        logger.info(
            "unlinked_report_built",
            cards=report.total_cards,
            payments=report.total_payments,
            queue=report.total_queue,
        )
        return report

    async def _mark_collisions(self, cards: list[UnlinkedCardAggregation]) -> None:
        """Flag cards already linked to two or more profiles."""
        if not cards:
            return
        last4s = sorted({c.last4 for c in cards})

        owners: dict[str, set[str]] = {}
        for link in await self._storage.get_card_links_by_last4(last4s):
            key = f"{link.card_last4}|{normalize_brand(link.card_brand)}"
            owners.setdefault(key, set()).add(link.profile_id)

        methods = await self._storage.get_active_payment_methods(last4s)
        user_ids = sorted({m.user_id for m in methods if m.user_id})
        profile_by_user = {
            p.user_id: p.id
            for p in await self._storage.get_profiles_by_user_ids(user_ids)
            if p.user_id
        } if user_ids else {}
        for method in methods:
            profile_id = profile_by_user.get(method.user_id)
            if profile_id:
                key = f"{method.last4}|{normalize_brand(method.brand)}"
                owners.setdefault(key, set()).add(profile_id)

        for card in cards:
            key = f"{card.last4}|{normalize_brand(card.brand)}"
            card.collision_risk = len(owners.get(key, set())) >= 2

    async def details(self, last4: str, brand: str) -> UnlinkedDetails:
        """
        List the unlinked payments and queue rows of one card.

        Args:
            last4: Last four digits of the card
            brand: Card brand, compared case-insensitively

        Returns:
            UnlinkedDetails, newest first, undated rows last
        """
        payments = await self._storage.list_payments(
            card_last4=last4,
            card_brand=brand,
            unlinked_only=True,
            limit=DETAILS_LIMIT,
        )
        queue = await self._storage.list_queue(
            card_last4=last4,
            card_brand=brand,
            unlinked_only=True,
            limit=DETAILS_LIMIT,
        )

        items = [
            UnlinkedPaymentDetail(
                id=p.id,
                source="payments_v2",
                uid=p.provider_payment_id,
                amount=p.amount,
                currency=p.currency,
                status=p.status,
                customer_email=p.customer_email,
                card_holder=p.card_holder,
                paid_at=p.paid_at,
            )
            for p in payments
        ]
        items.extend(
            UnlinkedPaymentDetail(
                id=q.id,
                source="queue",
                uid=q.bepaid_uid,
                amount=q.amount or Decimal("0"),
                currency=q.currency,
                status=q.status,
                customer_email=q.customer_email,
                card_holder=q.card_holder,
                paid_at=q.paid_at,
            )
            for q in queue
        )

        dated = [i for i in items if i.paid_at is not None]
        undated = [i for i in items if i.paid_at is None]
        dated.sort(key=lambda i: i.paid_at.replace(tzinfo=None), reverse=True)

        return UnlinkedDetails(last4=last4, brand=brand.lower(), items=dated + undated)
