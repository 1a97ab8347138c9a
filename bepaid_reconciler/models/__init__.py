"""
Data Models Package

This package contains all Pydantic models used in the bePaid Reconciler.
Every record read from an export or the database is validated
against one of these schemas.
"""

from bepaid_reconciler.models.transaction import (
    ImportStatus,
    MatchedBy,
    NormalizedStatus,
    ParsedTransaction,
    RawTransaction,
    ReconcileStatus,
)
from bepaid_reconciler.models.records import (
    CardLink,
    OrderRecord,
    PaymentMethodRecord,
    PaymentRecord,
    ProductMapping,
    ProfileRecord,
    QueueRecord,
    QueueSource,
    QueueStatus,
)
from bepaid_reconciler.models.reports import (
    AutolinkRequest,
    AutolinkResult,
    AutolinkSample,
    AutolinkStats,
    DiscrepancyReport,
    DiscrepancyType,
    ImportSummary,
    ImportValidationResult,
    IssueSeverity,
    PurgeRecord,
    PurgeReport,
    PurgeRequest,
    RawSyncResult,
    RawSyncStatus,
    ReconciliationItem,
    ReconciliationReport,
    ReconciliationStats,
    UnlinkedCardAggregation,
    UnlinkedDetails,
    UnlinkedPaymentDetail,
    UnlinkedReport,
    ValidationIssue,
)
from bepaid_reconciler.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transactions
    "ImportStatus",
    "MatchedBy",
    "NormalizedStatus",
    "ParsedTransaction",
    "RawTransaction",
    "ReconcileStatus",
    # Database rows
    "CardLink",
    "OrderRecord",
    "PaymentMethodRecord",
    "PaymentRecord",
    "ProductMapping",
    "ProfileRecord",
    "QueueRecord",
    "QueueSource",
    "QueueStatus",
    # Reports
    "AutolinkRequest",
    "AutolinkResult",
    "AutolinkSample",
    "AutolinkStats",
    "DiscrepancyReport",
    "DiscrepancyType",
    "ImportSummary",
    "ImportValidationResult",
    "IssueSeverity",
    "PurgeRecord",
    "PurgeReport",
    "PurgeRequest",
    "RawSyncResult",
    "RawSyncStatus",
    "ReconciliationItem",
    "ReconciliationReport",
    "ReconciliationStats",
    "UnlinkedCardAggregation",
    "UnlinkedDetails",
    "UnlinkedPaymentDetail",
    "UnlinkedReport",
    "ValidationIssue",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
