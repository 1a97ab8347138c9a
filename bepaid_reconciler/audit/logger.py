"""
Audit Logger

DESIGN DECISION: Every bulk write the reconciler performs is logged.
This provides:
1. Traceability of links between payments and contacts
2. Debugging capability for partially failed imports
3. A record of the dry runs an operator reviewed

The audit logger:
- Is async to match the storage interface
- Gracefully handles failures (an import never fails because logging did)
- Supports correlation IDs to trace the events of one user action
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from bepaid_reconciler.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bepaid_reconciler.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_logs table (for persistence and admin visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_import_started(
        self,
        filename: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        """Log the start of a file import."""
        await self.log(AuditEventBuilder.import_started(
            filename=filename,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_file_parsed(
        self,
        filename: str,
        row_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.file_parsed(
            filename=filename,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    async def log_contacts_matched(
        self,
        by_method: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.contacts_matched(
            by_method=by_method,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_completed(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_completed(
            counts=counts,
            correlation_id=correlation_id,
        ))

    async def log_record_import_failed(
        self,
        uid: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a single record that failed inside a batch."""
        await self.log(AuditEventBuilder.record_import_failed(
            uid=uid,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_import_completed(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.import_completed(
            counts=counts,
            correlation_id=correlation_id,
        ))

    async def log_ghost_profile_created(
        self,
        profile_id: str,
        full_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ghost_profile_created(
            profile_id=profile_id,
            full_name=full_name,
            correlation_id=correlation_id,
        ))

    async def log_order_created(
        self,
        order_id: str,
        uid: str,
        product_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.order_created(
            order_id=order_id,
            uid=uid,
            product_id=product_id,
            correlation_id=correlation_id,
        ))

    async def log_card_link_saved(
        self,
        profile_id: str,
        card_last4: str,
        card_holder: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.card_link_saved(
            profile_id=profile_id,
            card_last4=card_last4,
            card_holder=card_holder,
            correlation_id=correlation_id,
        ))

    async def log_autolink_finished(
        self,
        profile_id: str,
        dry_run: bool,
        stop_reason: Optional[str],
        stats: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a card autolink run, stopped or not."""
        await self.log(AuditEventBuilder.autolink_finished(
            profile_id=profile_id,
            dry_run=dry_run,
            stop_reason=stop_reason,
            stats=stats,
            correlation_id=correlation_id,
        ))

    async def log_purge_finished(
        self,
        dry_run: bool,
        stop_reason: Optional[str],
        stats: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.purge_finished(
            dry_run=dry_run,
            stop_reason=stop_reason,
            stats=stats,
            correlation_id=correlation_id,
        ))

    async def log_raw_sync_finished(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.raw_sync_finished(
            counts=counts,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., file import).
    Pass it through all subsequent operations.
    """
    return uuid4()
