"""
Audit Models for bePaid Reconciler

Every bulk write the reconciler performs is logged for audit purposes.
This provides:
1. Traceability of who linked which payment to which contact
2. Debugging information when an import goes wrong
3. A record of dry runs that were looked at before executing

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the import pipeline and every bulk admin
    operation has its own event type.
    """
    # File import
    IMPORT_STARTED = "import_started"
    FILE_PARSED = "file_parsed"
    CONTACTS_MATCHED = "contacts_matched"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECORD_IMPORT_FAILED = "record_import_failed"
    IMPORT_COMPLETED = "import_completed"

    # Side effects of an import
    GHOST_PROFILE_CREATED = "ghost_profile_created"
    ORDER_CREATED = "order_created"
    CARD_LINK_SAVED = "card_link_saved"

    # Admin operations
    AUTOLINK_COMPLETED = "autolink_completed"
    AUTOLINK_STOPPED = "autolink_stopped"
    PURGE_COMPLETED = "purge_completed"
    RAW_SYNC_COMPLETED = "raw_sync_completed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'import', 'profile', 'queue')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Database id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_db_row(self) -> dict[str, Any]:
        """
        Convert to a row for the audit_logs table.

        Details are passed through json round-trip so Decimal and
        datetime values survive the JSONB column.
        """
        return {
            "id": str(self.event_id),
            "created_at": self.timestamp.isoformat(),
            "action": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "meta": json.loads(json.dumps(self.details, default=str)),
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.file_parsed("export.csv", 120, correlation_id)
        event = AuditEventBuilder.import_completed(summary_counts, correlation_id)
    """

    @staticmethod
    def import_started(
        filename: str,
        file_size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Import started: {filename}",
            details={
                "filename": filename,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def file_parsed(
        filename: str,
        row_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FILE_PARSED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Parsed {row_count} transactions from {filename}",
            details={
                "filename": filename,
                "row_count": row_count,
            },
        )

    @staticmethod
    def contacts_matched(
        by_method: dict[str, int],
        correlation_id: UUID
    ) -> AuditEvent:
        matched = sum(v for k, v in by_method.items() if k != "none")
        return AuditEvent(
            event_type=AuditEventType.CONTACTS_MATCHED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Matched {matched} transactions to contacts",
            details={"by_method": by_method},
        )

    @staticmethod
    def reconciliation_completed(
        counts: dict[str, int],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            entity_type="import",
            correlation_id=correlation_id,
            description=(
                f"Reconciled: {counts.get('new', 0)} new, "
                f"{counts.get('updates', 0)} updates, "
                f"{counts.get('conflicts', 0)} conflicts"
            ),
            details=counts,
        )

    @staticmethod
    def record_import_failed(
        uid: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=uid,
            correlation_id=correlation_id,
            description=f"Failed to import transaction {uid}",
            error_message=error_message,
        )

    @staticmethod
    def import_completed(
        counts: dict[str, int],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if counts.get("errors") else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            severity=severity,
            entity_type="import",
            correlation_id=correlation_id,
            description=(
                f"Import completed: {counts.get('imported', 0)} imported, "
                f"{counts.get('errors', 0)} errors"
            ),
            details=counts,
        )

    @staticmethod
    def ghost_profile_created(
        profile_id: str,
        full_name: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GHOST_PROFILE_CREATED,
            entity_type="profile",
            entity_id=profile_id,
            correlation_id=correlation_id,
            description=f"Ghost profile created: {full_name}",
            details={"full_name": full_name},
        )

    @staticmethod
    def order_created(
        order_id: str,
        uid: str,
        product_id: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORDER_CREATED,
            entity_type="order",
            entity_id=order_id,
            correlation_id=correlation_id,
            description=f"Order created for transaction {uid}",
            details={
                "bepaid_uid": uid,
                "product_id": product_id,
            },
        )

    @staticmethod
    def card_link_saved(
        profile_id: str,
        card_last4: str,
        card_holder: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_LINK_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="profile",
            entity_id=profile_id,
            correlation_id=correlation_id,
            description=f"Card *{card_last4} linked to profile",
            details={
                "card_last4": card_last4,
                "card_holder": card_holder,
            },
        )

    @staticmethod
    def autolink_finished(
        profile_id: str,
        dry_run: bool,
        stop_reason: Optional[str],
        stats: dict[str, Any],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        if stop_reason:
            return AuditEvent(
                event_type=AuditEventType.AUTOLINK_STOPPED,
                severity=AuditSeverity.WARNING,
                entity_type="profile",
                entity_id=profile_id,
                correlation_id=correlation_id,
                description=f"Card autolink stopped: {stop_reason}",
                error_code=stop_reason,
                details={"dry_run": dry_run, **stats},
                is_user_action=True,
            )
        mode = "dry run" if dry_run else "executed"
        return AuditEvent(
            event_type=AuditEventType.AUTOLINK_COMPLETED,
            entity_type="profile",
            entity_id=profile_id,
            correlation_id=correlation_id,
            description=f"Card autolink {mode}",
            details={"dry_run": dry_run, **stats},
            is_user_action=True,
        )

    @staticmethod
    def purge_finished(
        dry_run: bool,
        stop_reason: Optional[str],
        stats: dict[str, Any],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        mode = "dry run" if dry_run else "executed"
        return AuditEvent(
            event_type=AuditEventType.PURGE_COMPLETED,
            severity=AuditSeverity.WARNING if stop_reason else AuditSeverity.INFO,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"File import purge {mode}",
            error_code=stop_reason,
            details={"dry_run": dry_run, **stats},
            is_user_action=True,
        )

    @staticmethod
    def raw_sync_finished(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RAW_SYNC_COMPLETED,
            entity_type="queue",
            correlation_id=correlation_id,
            description=f"Raw provider sync: {counts.get('created', 0)} queued",
            details=counts,
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
