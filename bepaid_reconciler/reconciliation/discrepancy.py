"""
Discrepancy Report

Compares the file imports of a period with the orders they produced.

Each file-import queue row is joined to its confirmed payment by UID,
and the payment to its order:

    no order                                      -> not_found
    |amount - order price| > 1% and > 0.5          -> amount_mismatch
    queue row still pending while the order paid  -> status_mismatch
    otherwise                                     -> none (matched)
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

import structlog

from bepaid_reconciler.models.records import PaymentRecord, QueueRecord, QueueSource
from bepaid_reconciler.models.reports import (
    DiscrepancyReport,
    DiscrepancyType,
    ReconciliationItem,
    ReconciliationStats,
)
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

RELATIVE_AMOUNT_TOLERANCE = Decimal("0.01")
ABSOLUTE_AMOUNT_TOLERANCE = Decimal("0.5")


def compare_row(
    row: QueueRecord,
    payment: Optional[PaymentRecord],
) -> ReconciliationItem:
    """Build the report line of one queue row."""
    amount = row.amount or Decimal("0")
    item = ReconciliationItem(
        queue_id=row.id,
        bepaid_uid=row.bepaid_uid,
        amount=amount,
        currency=row.currency or "BYN",
        queue_status=row.status,
        customer_email=row.customer_email,
        card_holder=row.card_holder or row.raw_payload.get("card_holder"),
        paid_at=row.paid_at,
        matched_profile_id=row.matched_profile_id,
    )

    order = payment.order if payment is not None else None
    if payment is not None:
        item.payment_id = payment.id
    if order is None:
        item.discrepancy = DiscrepancyType.NOT_FOUND
        item.discrepancy_details = "No order for this payment"
        return item

    item.order_id = order.id
    item.order_number = order.order_number
    item.order_amount = order.final_price
    item.order_status = order.status

    diff = abs(amount - (order.final_price or Decimal("0")))
    if diff > amount * RELATIVE_AMOUNT_TOLERANCE and diff > ABSOLUTE_AMOUNT_TOLERANCE:
        item.discrepancy = DiscrepancyType.AMOUNT_MISMATCH
        item.discrepancy_details = f"Amount differs by {diff}"
    elif row.status == "pending" and order.status == "paid":
        item.discrepancy = DiscrepancyType.STATUS_MISMATCH
        item.discrepancy_details = "Order is paid but the queue row is pending"
    return item


class DiscrepancyAnalyzer:
    """
    Builds the discrepancy report for a date range.

    Usage:
        analyzer = DiscrepancyAnalyzer(storage)
        report = await analyzer.analyze(date(2026, 1, 1), date(2026, 1, 31))
    """

    def __init__(self, storage: ReconciliationStorageInterface):
        self._storage = storage

    async def analyze(self, date_from: date, date_to: date) -> DiscrepancyReport:
        """
        Compare file imports created between two dates with their orders.

        Args:
            date_from: First day of the period
            date_to: Last day of the period (inclusive)

        Returns:
            DiscrepancyReport with one item per queue row
        """
        if date_to < date_from:
            raise ValueError("date_to must not be earlier than date_from")

        rows = await self._storage.list_queue(
            source=QueueSource.FILE_IMPORT.value,
            created_from=datetime.combine(date_from, time.min),
            created_to=datetime.combine(date_to + timedelta(days=1), time.min),
        )
        uids = [r.bepaid_uid for r in rows if r.bepaid_uid]
        payments = {
            p.provider_payment_id: p
            for p in await self._storage.get_payments_by_uids(uids)
            if p.provider_payment_id
        }

        stats = ReconciliationStats()
        items = []
        for row in rows:
            item = compare_row(row, payments.get(row.bepaid_uid))
            items.append(item)

            stats.total += 1
            stats.bepaid_total += item.amount
            if item.order_amount is not None:
                stats.system_total += item.order_amount

            if item.discrepancy == DiscrepancyType.NOT_FOUND:
                stats.not_found += 1
            elif item.discrepancy == DiscrepancyType.AMOUNT_MISMATCH:
                stats.amount_mismatch += 1
            elif item.discrepancy == DiscrepancyType.STATUS_MISMATCH:
                stats.status_mismatch += 1
            else:
                stats.matched += 1

        logger.info(
            "discrepancy_report_built",
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
            total=stats.total,
            matched=stats.matched,
            not_found=stats.not_found,
        )
        return DiscrepancyReport(
            date_from=date_from,
            date_to=date_to,
            items=items,
            stats=stats,
        )
