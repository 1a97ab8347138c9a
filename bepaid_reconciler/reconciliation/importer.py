"""
Batch Importer

Writes the selected records of a reconciliation report into the
reconcile queue, creating orders where a product mapping allows it.

DESIGN DECISION: Idempotent and failure-tolerant.
1. A record already confirmed in payments_v2 is never queued again
2. A record queued since the report was built is reported as "exists"
3. A failing record is marked "error" and the batch goes on;
   a failed batch lookup marks that whole batch "error"
4. An order that cannot be created leaves the record "imported"

Running the same import twice therefore produces only "exists".
"""

from typing import Any, Optional
from uuid import UUID

import structlog

from bepaid_reconciler.audit import AuditLogger
from bepaid_reconciler.config import ImportSettings, get_settings
from bepaid_reconciler.matching.transliteration import transliterate_to_cyrillic
from bepaid_reconciler.models.records import (
    CardLink,
    ProductMapping,
    QueueRecord,
    QueueSource,
    QueueStatus,
)
from bepaid_reconciler.models.reports import (
    ImportSummary,
    RawSyncResult,
    RawSyncStatus,
)
from bepaid_reconciler.models.transaction import (
    ImportStatus,
    MatchedBy,
    ParsedTransaction,
    RawTransaction,
    ReconcileStatus,
)
from bepaid_reconciler.parsing.normalizer import is_fee_transaction
from bepaid_reconciler.services.storage import (
    DuplicateError,
    ReconciliationStorageInterface,
)


logger = structlog.get_logger()


def build_queue_payload(tx: ParsedTransaction) -> dict[str, Any]:
    """Column values of a new file-import queue row."""
    return {
        "bepaid_uid": tx.uid,
        "bepaid_order_id": tx.bepaid_order_id,
        "tracking_id": tx.tracking_id,
        "amount": tx.amount,
        "currency": tx.currency,
        "customer_email": tx.customer_email,
        "description": tx.description,
        "matched_profile_id": tx.matched_profile_id,
        "paid_at": tx.paid_at,
        "created_at_bepaid": tx.created_at,
        "source": QueueSource.FILE_IMPORT.value,
        "status": QueueStatus.PENDING.value,
        "status_normalized": tx.status_normalized.value,
        "transaction_type": tx.transaction_type,
        "card_last4": tx.card_last4,
        "card_holder": tx.card_holder,
        "card_brand": tx.card_brand,
        "payment_method": tx.payment_method,
        "product_code": tx.product_code,
        "customer_name": tx.customer_name,
        "customer_surname": tx.customer_surname,
        "fee_percent": tx.fee_percent,
        "fee_amount": tx.fee_amount,
        "total_fee": tx.total_fee,
        "transferred_amount": tx.transferred_amount,
        "shop_id": tx.shop_id,
        "rrn": tx.rrn,
        "is_fee": is_fee_transaction(tx),
        "raw_payload": tx.to_payload(),
    }


def find_mapping(
    tx: ParsedTransaction,
    mappings: list[ProductMapping],
) -> Optional[ProductMapping]:
    """Mapping whose plan title equals the description or the card holder."""
    for mapping in mappings:
        if mapping.bepaid_plan_title in (tx.description, tx.card_holder):
            return mapping
    return None


class BatchImporter:
    """
    Imports reconciled transactions into the reconcile queue.

    Usage:
        importer = BatchImporter(storage, audit_logger)
        summary = await importer.import_transactions(report.select())
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ImportSettings] = None,
        auto_create_orders: Optional[bool] = None,
        create_ghost_profiles: Optional[bool] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().imports
        self._auto_create_orders = (
            self._settings.auto_create_orders
            if auto_create_orders is None else auto_create_orders
        )
        self._create_ghosts = (
            self._settings.create_ghost_profiles
            if create_ghost_profiles is None else create_ghost_profiles
        )

    async def import_transactions(
        self,
        transactions: list[ParsedTransaction],
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Import records in batches.

        Args:
            transactions: Classified records (new, updates, conflicts)
            correlation_id: Ties audit events to the user action

        Returns:
            ImportSummary; every record carries its import_status
        """
        summary = ImportSummary(total=len(transactions))
        mappings = (
            await self._storage.list_product_mappings()
            if self._auto_create_orders else []
        )
        ghosts: dict[str, str] = {}
        unannounced: set[str] = set()
        batch_size = self._settings.batch_size

        for start in range(0, len(transactions), batch_size):
            batch = transactions[start:start + batch_size]
            uids = [tx.uid for tx in batch]

            try:
                confirmed = {
                    p.provider_payment_id
                    for p in await self._storage.get_payments_by_uids(uids)
                }
                queued = {
                    row.bepaid_uid
                    for row in await self._storage.get_queue_by_uids(uids)
                }
            except Exception as e:
                logger.warning("import_batch_lookup_failed", uids=uids, error=str(e))
                for tx in batch:
                    await self._fail(tx, e, correlation_id)
                    summary.record(tx)
                continue

            for tx in batch:
                try:
                    await self._import_one(
                        tx, confirmed, queued, mappings, ghosts, unannounced,
                        summary, correlation_id,
                    )
                except Exception as e:
                    await self._fail(tx, e, correlation_id)
                summary.record(tx)

            logger.info(
                "import_batch_done",
                processed=min(start + batch_size, len(transactions)),
                total=len(transactions),
            )

        await self._audit.log_import_completed(
            counts=summary.counts(),
            correlation_id=correlation_id,
        )
        return summary

    async def _fail(
        self,
        tx: ParsedTransaction,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        tx.import_status = ImportStatus.ERROR
        tx.import_error = str(error) or type(error).__name__
        logger.warning("record_import_failed", uid=tx.uid, error=tx.import_error)
        await self._audit.log_record_import_failed(
            uid=tx.uid,
            error_message=tx.import_error,
            correlation_id=correlation_id,
        )

    async def _import_one(
        self,
        tx: ParsedTransaction,
        confirmed: set[Optional[str]],
        queued: set[Optional[str]],
        mappings: list[ProductMapping],
        ghosts: dict[str, str],
        unannounced: set[str],
        summary: ImportSummary,
        correlation_id: Optional[UUID],
    ) -> None:
        if tx.uid in confirmed:
            tx.import_status = ImportStatus.EXISTS
            return

        if tx.reconcile_status in (ReconcileStatus.UPDATE, ReconcileStatus.CONFLICT):
            fields: dict[str, Any] = {
                "amount": tx.amount,
                "status_normalized": tx.status_normalized.value,
            }
            # An unmatched record never clears a contact linked earlier
            if tx.matched_profile_id:
                fields["matched_profile_id"] = tx.matched_profile_id
            await self._storage.update_queue_by_uid(tx.uid, fields)
            tx.import_status = ImportStatus.UPDATED
            await self._learn_card_link(tx, summary, correlation_id)
            return

        if tx.uid in queued:
            tx.import_status = ImportStatus.EXISTS
            return

        if self._create_ghosts and not tx.is_matched:
            await self._attach_ghost_profile(tx, ghosts, unannounced)

        try:
            record = await self._storage.insert_queue_record(build_queue_payload(tx))
        except DuplicateError:
            tx.import_status = ImportStatus.EXISTS
            return

        queued.add(tx.uid)
        tx.import_status = ImportStatus.IMPORTED

        # A ghost counts once its first queue row is written
        if tx.matched_by == MatchedBy.GHOST_CREATED and tx.matched_profile_id in unannounced:
            unannounced.discard(tx.matched_profile_id)
            summary.ghosts_created += 1
            await self._audit.log_ghost_profile_created(
                profile_id=tx.matched_profile_id,
                full_name=tx.matched_profile_name,
                correlation_id=correlation_id,
            )

        await self._learn_card_link(tx, summary, correlation_id)

        if self._auto_create_orders and tx.matched_profile_id:
            await self._create_order(tx, record, mappings, correlation_id)

    async def _attach_ghost_profile(
        self,
        tx: ParsedTransaction,
        ghosts: dict[str, str],
        unannounced: set[str],
    ) -> None:
        """Create (once per holder/email) a placeholder contact for an unknown payer."""
        if not tx.card_holder:
            return

        key = (tx.customer_email or tx.card_holder).lower()
        profile_id = ghosts.get(key)
        full_name = transliterate_to_cyrillic(tx.card_holder)

        if profile_id is None:
            profile = await self._storage.create_ghost_profile(
                full_name=full_name,
                email=tx.customer_email,
            )
            profile_id = profile.id
            ghosts[key] = profile_id
            unannounced.add(profile_id)

        tx.matched_profile_id = profile_id
        tx.matched_profile_name = full_name
        tx.matched_by = MatchedBy.GHOST_CREATED

    async def _learn_card_link(
        self,
        tx: ParsedTransaction,
        summary: ImportSummary,
        correlation_id: Optional[UUID],
    ) -> None:
        """Remember card -> contact for records matched by email or name."""
        if tx.matched_by not in (MatchedBy.EMAIL, MatchedBy.NAME):
            return
        if not (tx.matched_profile_id and tx.card_last4 and tx.card_holder):
            return

        link = CardLink(
            card_last4=tx.card_last4,
            card_brand=tx.card_brand,
            card_holder=tx.card_holder,
            profile_id=tx.matched_profile_id,
        )
        try:
            saved = await self._storage.save_card_link(link)
        except Exception as e:
            # Queue row is already written
            logger.warning("card_link_save_failed", uid=tx.uid, error=str(e))
            return

        if saved:
            summary.card_links_saved += 1
            await self._audit.log_card_link_saved(
                profile_id=tx.matched_profile_id,
                card_last4=tx.card_last4,
                card_holder=tx.card_holder,
                correlation_id=correlation_id,
            )

    async def _create_order(
        self,
        tx: ParsedTransaction,
        record: QueueRecord,
        mappings: list[ProductMapping],
        correlation_id: Optional[UUID],
    ) -> None:
        mapping = find_mapping(tx, mappings)
        if mapping is None or not mapping.auto_create_order or not mapping.product_id:
            return

        try:
            order = await self._storage.create_order_from_queue(
                record,
                tx.matched_profile_id,
                mapping,
            )
        except Exception as e:
            logger.warning("order_create_failed", uid=tx.uid, error=str(e))
            return

        tx.order_id = order.id
        tx.auto_created_order = True
        tx.import_status = ImportStatus.ORDER_CREATED
        await self._audit.log_order_created(
            order_id=order.id,
            uid=tx.uid,
            product_id=mapping.product_id,
            correlation_id=correlation_id,
        )


class RawTransactionSync:
    """
    Sends transactions fetched from the provider API to the queue.

    Unsuccessful provider transactions are queued with status "error"
    so they stay visible without being processed.
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def sync(
        self,
        items: list[RawTransaction],
        correlation_id: Optional[UUID] = None,
    ) -> list[RawSyncResult]:
        queued = {
            row.bepaid_uid
            for row in await self._storage.get_queue_by_uids([i.uid for i in items])
        }
        results: list[RawSyncResult] = []

        for item in items:
            if item.uid in queued:
                results.append(RawSyncResult(uid=item.uid, status=RawSyncStatus.EXISTS))
                continue

            try:
                await self._storage.insert_queue_record({
                    "bepaid_uid": item.uid,
                    "tracking_id": item.tracking_id,
                    "amount": item.amount,
                    "currency": item.currency,
                    "customer_email": item.customer_email,
                    "card_last4": item.card_last_4,
                    "card_holder": item.card_holder,
                    "card_brand": item.card_brand,
                    "plan_title": item.plan_title,
                    "paid_at": item.paid_at,
                    "created_at_bepaid": item.created_at,
                    "raw_payload": item.model_dump(mode="json"),
                    "source": QueueSource.MANUAL_RAW_SYNC.value,
                    "status": (
                        QueueStatus.PENDING.value
                        if item.is_successful else QueueStatus.ERROR.value
                    ),
                    "last_error": (
                        None if item.is_successful else f"bePaid status: {item.status}"
                    ),
                })
            except DuplicateError:
                results.append(RawSyncResult(uid=item.uid, status=RawSyncStatus.EXISTS))
                continue
            except Exception as e:
                logger.warning("raw_sync_failed", uid=item.uid, error=str(e))
                results.append(RawSyncResult(
                    uid=item.uid,
                    status=RawSyncStatus.ERROR,
                    error=str(e),
                ))
                continue

            queued.add(item.uid)
            results.append(RawSyncResult(uid=item.uid, status=RawSyncStatus.CREATED))

        counts = {
            status.value: sum(1 for r in results if r.status == status)
            for status in RawSyncStatus
        }
        await self._audit.log_raw_sync_finished(counts=counts, correlation_id=correlation_id)
        return results
