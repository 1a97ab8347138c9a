"""
File Import Purge

Soft-cancels stale file-import rows of the reconcile queue.

DESIGN DECISION: Rows are never deleted. Eligible rows get status
"cancelled"; rows that already produced a payment or an order are
reported as conflicts and left untouched.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from bepaid_reconciler.audit import AuditLogger
from bepaid_reconciler.config import PurgeSettings, get_settings
from bepaid_reconciler.models.records import QueueRecord, QueueSource, QueueStatus
from bepaid_reconciler.models.reports import PurgeRecord, PurgeReport, PurgeRequest
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

MAX_SAMPLES = 10


def _day_start(day: Optional[date]) -> Optional[datetime]:
    return datetime.combine(day, time.min) if day else None


def _purge_record(row: QueueRecord, reason: Optional[str] = None) -> PurgeRecord:
    return PurgeRecord(
        id=row.id,
        bepaid_uid=row.bepaid_uid,
        amount=row.amount or Decimal("0"),
        status=row.status,
        created_at=row.created_at,
        reason=reason,
    )


class ImportPurger:
    """
    Soft-cancels file imports.

    Usage:
        purger = ImportPurger(storage, audit_logger)
        report = await purger.run(PurgeRequest(dry_run=True))
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[PurgeSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().purge

    async def run(
        self,
        request: PurgeRequest,
        correlation_id: Optional[UUID] = None,
    ) -> PurgeReport:
        """
        Cancel (or, in a dry run, count) the matching queue rows.

        Args:
            request: Date range, status filter and run options
            correlation_id: Ties audit events to the user action

        Returns:
            PurgeReport
        """
        limit = request.limit or self._settings.limit
        batch_size = request.batch_size or self._settings.batch_size
        report = PurgeReport(dry_run=request.dry_run)

        rows = await self._storage.list_queue(
            source=QueueSource.FILE_IMPORT.value,
            statuses=request.statuses,
            created_from=_day_start(request.date_from),
            created_to=_day_start(request.date_to + timedelta(days=1)) if request.date_to else None,
            limit=limit + 1,
        )
        report.total_found = len(rows)

        if len(rows) > limit:
            report.stop_reason = "too_many_records"
            logger.warning("purge_too_many_records", found=len(rows), limit=limit)
            await self._finish(report, correlation_id)
            return report

        uids = [r.bepaid_uid for r in rows if r.bepaid_uid]
        paid_uids = {
            p.provider_payment_id
            for p in await self._storage.get_payments_by_uids(uids)
        } if uids else set()

        eligible: list[QueueRecord] = []
        for row in rows:
            if row.bepaid_uid and row.bepaid_uid in paid_uids:
                report.with_conflicts += 1
                report.conflicts.append(_purge_record(row, "payment_exists"))
            elif row.matched_order_id:
                report.with_conflicts += 1
                report.conflicts.append(_purge_record(row, "order_linked"))
            else:
                eligible.append(row)

        report.conflicts = report.conflicts[:MAX_SAMPLES]
        report.eligible_for_cancel = len(eligible)
        report.total_amount = sum((r.amount or Decimal("0") for r in eligible), Decimal("0"))
        report.examples = [_purge_record(r) for r in eligible[:MAX_SAMPLES]]

        if not request.dry_run:
            for i in range(0, len(eligible), batch_size):
                batch = eligible[i:i + batch_size]
                report.cancelled += await self._storage.set_queue_status(
                    [r.id for r in batch],
                    QueueStatus.CANCELLED.value,
                )

        await self._finish(report, correlation_id)
        return report

    async def _finish(self, report: PurgeReport, correlation_id: Optional[UUID]) -> None:
        logger.info(
            "purge_finished",
            dry_run=report.dry_run,
            found=report.total_found,
            eligible=report.eligible_for_cancel,
            cancelled=report.cancelled,
            stop_reason=report.stop_reason,
        )
        await self._audit.log_purge_finished(
            dry_run=report.dry_run,
            stop_reason=report.stop_reason,
            stats=report.audit_details(),
            correlation_id=correlation_id,
        )
