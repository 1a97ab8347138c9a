"""
Reconciliation Classifier

Compares parsed transactions with what the database already holds:

    payments_v2 has the UID               -> MATCH (already confirmed)
    queue has the UID, status/amount diff -> CONFLICT
    queue has the UID, new contact known  -> UPDATE
    queue has the UID, nothing changed    -> MATCH
    nowhere                               -> NEW
"""

from decimal import Decimal
from typing import Optional

import structlog

from bepaid_reconciler.models.records import PaymentRecord, QueueRecord
from bepaid_reconciler.models.reports import ReconciliationReport
from bepaid_reconciler.models.transaction import ParsedTransaction, ReconcileStatus
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")


def classify_one(
    tx: ParsedTransaction,
    queue_row: Optional[QueueRecord],
    payment: Optional[PaymentRecord],
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
) -> ReconcileStatus:
    """Decide the reconcile status of one transaction and annotate it."""
    if payment is not None:
        tx.existing_record = payment.model_dump(mode="json", exclude={"order"})
        tx.reconcile_status = ReconcileStatus.MATCH
        return tx.reconcile_status

    if queue_row is None:
        tx.reconcile_status = ReconcileStatus.NEW
        return tx.reconcile_status

    tx.existing_record = queue_row.model_dump(
        mode="json",
        include={"id", "bepaid_uid", "status", "status_normalized", "amount", "matched_profile_id"},
    )

    status_differs = (queue_row.status_normalized or "") != tx.status_normalized.value
    amount_differs = abs((queue_row.amount or Decimal("0")) - tx.amount) > amount_tolerance
    profile_differs = bool(
        tx.matched_profile_id
        and queue_row.matched_profile_id != tx.matched_profile_id
    )

    if status_differs or amount_differs:
        tx.reconcile_status = ReconcileStatus.CONFLICT
    elif profile_differs:
        tx.reconcile_status = ReconcileStatus.UPDATE
    else:
        tx.reconcile_status = ReconcileStatus.MATCH
    return tx.reconcile_status


async def classify(
    transactions: list[ParsedTransaction],
    storage: ReconciliationStorageInterface,
    amount_tolerance: Optional[float] = None,
) -> ReconciliationReport:
    """
    Classify transactions against the queue and confirmed payments.

    Two bulk lookups cover the whole file.

    Args:
        transactions: Matched transactions, annotated in place
        storage: Reconciliation storage
        amount_tolerance: Largest amount difference still treated as equal

    Returns:
        ReconciliationReport with the four buckets
    """
    tolerance = (
        Decimal(str(amount_tolerance))
        if amount_tolerance is not None
        else DEFAULT_AMOUNT_TOLERANCE
    )
    uids = [tx.uid for tx in transactions]

    queue_map = {
        row.bepaid_uid: row
        for row in await storage.get_queue_by_uids(uids)
        if row.bepaid_uid
    }
    payment_map = {
        p.provider_payment_id: p
        for p in await storage.get_payments_by_uids(uids)
        if p.provider_payment_id
    }

    report = ReconciliationReport(total_in_file=len(transactions))
    buckets = {
        ReconcileStatus.NEW: report.new,
        ReconcileStatus.UPDATE: report.updates,
        ReconcileStatus.MATCH: report.matches,
        ReconcileStatus.CONFLICT: report.conflicts,
    }

    for tx in transactions:
        status = classify_one(
            tx,
            queue_map.get(tx.uid),
            payment_map.get(tx.uid),
            tolerance,
        )
        buckets[status].append(tx)

    logger.info("reconciliation_classified", **report.counts())
    return report
