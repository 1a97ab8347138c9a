"""
Report Models

Results returned by every reconciler operation. They are plain
pydantic models so the CLI can dump them as JSON unchanged.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from bepaid_reconciler.models.transaction import (
    ImportStatus,
    ParsedTransaction,
)


# =============================================================================
# VALIDATION
# =============================================================================

class IssueSeverity(str, Enum):
    """How serious a validation issue is."""
    ERROR = "error"      # Record is dropped from the import
    WARNING = "warning"  # Record is imported but looks suspicious
    INFO = "info"        # Informational only


class ValidationIssue(BaseModel):
    """A single problem found in a parsed export."""

    uid: str
    field: str
    issue_type: str
    message: str
    severity: IssueSeverity
    suggested_fix: Optional[str] = None


class ImportValidationResult(BaseModel):
    """Issues found in an export plus the records that survive them."""

    transactions: list[ParsedTransaction] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


# =============================================================================
# CLASSIFICATION
# =============================================================================

class ReconciliationReport(BaseModel):
    """
    Parsed transactions split by how they relate to stored data.

    Each bucket holds the annotated ParsedTransaction objects, so the
    same instances flow on into the importer.
    """

    total_in_file: int = 0
    new: list[ParsedTransaction] = Field(default_factory=list)
    updates: list[ParsedTransaction] = Field(default_factory=list)
    matches: list[ParsedTransaction] = Field(default_factory=list)
    conflicts: list[ParsedTransaction] = Field(default_factory=list)

    def select(
        self,
        new: bool = True,
        updates: bool = True,
        conflicts: bool = False,
    ) -> list[ParsedTransaction]:
        """Records chosen for import. Matches are never re-imported."""
        selected: list[ParsedTransaction] = []
        if new:
            selected.extend(self.new)
        if updates:
            selected.extend(self.updates)
        if conflicts:
            selected.extend(self.conflicts)
        return selected

    def counts(self) -> dict[str, int]:
        return {
            "total_in_file": self.total_in_file,
            "new": len(self.new),
            "updates": len(self.updates),
            "matches": len(self.matches),
            "conflicts": len(self.conflicts),
        }


# =============================================================================
# IMPORT
# =============================================================================

class ImportSummary(BaseModel):
    """Outcome counts of a batch import, plus the annotated records."""

    total: int = 0
    imported: int = 0
    updated: int = 0
    exists: int = 0
    orders_created: int = 0
    ghosts_created: int = 0
    card_links_saved: int = 0
    errors: int = 0
    error_details: list[dict[str, str]] = Field(default_factory=list)
    records: list[ParsedTransaction] = Field(default_factory=list)

    def record(self, tx: ParsedTransaction) -> None:
        """Count the final import status of one record."""
        self.records.append(tx)
        if tx.import_status == ImportStatus.EXISTS:
            self.exists += 1
        elif tx.import_status == ImportStatus.UPDATED:
            self.updated += 1
        elif tx.import_status == ImportStatus.ORDER_CREATED:
            self.imported += 1
            self.orders_created += 1
        elif tx.import_status == ImportStatus.IMPORTED:
            self.imported += 1
        elif tx.import_status == ImportStatus.ERROR:
            self.errors += 1
            self.error_details.append({
                "uid": tx.uid,
                "error": tx.import_error or "Unknown error",
            })

    def counts(self) -> dict[str, int]:
        return self.model_dump(exclude={"error_details", "records"})


class RawSyncStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    ERROR = "error"


class RawSyncResult(BaseModel):
    """Per-transaction outcome of sending raw provider data to the queue."""

    uid: str
    status: RawSyncStatus
    error: Optional[str] = None


# =============================================================================
# DISCREPANCY REPORT
# =============================================================================

class DiscrepancyType(str, Enum):
    NONE = "none"
    NOT_FOUND = "not_found"
    AMOUNT_MISMATCH = "amount_mismatch"
    STATUS_MISMATCH = "status_mismatch"


class ReconciliationItem(BaseModel):
    """One imported queue row compared to the order it should have produced."""

    queue_id: str
    bepaid_uid: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: str = "BYN"
    queue_status: str
    customer_email: Optional[str] = None
    card_holder: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    order_amount: Optional[Decimal] = None
    matched_profile_id: Optional[str] = None
    order_status: Optional[str] = None
    discrepancy: DiscrepancyType = DiscrepancyType.NONE
    discrepancy_details: Optional[str] = None


class ReconciliationStats(BaseModel):
    total: int = 0
    matched: int = 0
    not_found: int = 0
    amount_mismatch: int = 0
    status_mismatch: int = 0
    bepaid_total: Decimal = Decimal("0")
    system_total: Decimal = Decimal("0")

    @computed_field
    @property
    def difference(self) -> Decimal:
        return self.bepaid_total - self.system_total


class DiscrepancyReport(BaseModel):
    date_from: date
    date_to: date
    items: list[ReconciliationItem] = Field(default_factory=list)
    stats: ReconciliationStats = Field(default_factory=ReconciliationStats)

    def discrepancies_only(self) -> list[ReconciliationItem]:
        return [i for i in self.items if i.discrepancy != DiscrepancyType.NONE]


# =============================================================================
# UNLINKED PAYMENTS REPORT
# =============================================================================

class UnlinkedCardAggregation(BaseModel):
    """Unlinked payments and queue rows paid with one card."""

    last4: str
    brand: str
    unlinked_payments_count: int = 0
    unlinked_queue_count: int = 0
    total_count: int = 0
    payments_amount: Decimal = Decimal("0")
    queue_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    last_seen_at: Optional[datetime] = None
    collision_risk: bool = Field(
        default=False,
        description="The card is already linked to two or more contacts"
    )


class UnlinkedReport(BaseModel):
    cards: list[UnlinkedCardAggregation] = Field(default_factory=list)
    total_cards: int = 0
    total_payments: int = 0
    total_queue: int = 0
    total_amount: Decimal = Decimal("0")


class UnlinkedPaymentDetail(BaseModel):
    id: str
    source: str
    uid: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: str = "BYN"
    status: Optional[str] = None
    customer_email: Optional[str] = None
    card_holder: Optional[str] = None
    paid_at: Optional[datetime] = None


class UnlinkedDetails(BaseModel):
    last4: str
    brand: str
    items: list[UnlinkedPaymentDetail] = Field(default_factory=list)


# =============================================================================
# AUTOLINK
# =============================================================================

class AutolinkRequest(BaseModel):
    """Link historical payments of one card to a contact."""

    profile_id: str = ""
    card_last4: str = ""
    card_brand: str = ""
    user_id: Optional[str] = None
    provider_token: Optional[str] = None
    dry_run: bool = True
    limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Candidate limit; defaults to AUTOLINK_LIMIT"
    )
    unsafe_allow_large: bool = False


class AutolinkStats(BaseModel):
    candidates_payments: int = 0
    candidates_queue: int = 0
    updated_payments_profile: int = 0
    updated_queue_profile: int = 0
    skipped_already_linked: int = 0
    conflicts: int = 0


class AutolinkSample(BaseModel):
    id: str
    bepaid_uid: Optional[str] = None
    amount: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    reason: Optional[str] = None


class AutolinkResult(BaseModel):
    ok: bool
    dry_run: bool
    status: str = Field(..., pattern="^(success|stop|error)$")
    stats: AutolinkStats = Field(default_factory=AutolinkStats)
    stop_reason: Optional[str] = None
    payments_updated: list[AutolinkSample] = Field(default_factory=list)
    conflicts: list[AutolinkSample] = Field(default_factory=list)


# =============================================================================
# PURGE
# =============================================================================

class PurgeRequest(BaseModel):
    """Soft-cancel stale file-import queue rows."""

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    statuses: list[str] = Field(
        default_factory=lambda: ["pending", "error", "processing"]
    )
    dry_run: bool = True
    limit: Optional[int] = Field(default=None, ge=1)
    batch_size: Optional[int] = Field(default=None, ge=1)


class PurgeRecord(BaseModel):
    id: str
    bepaid_uid: Optional[str] = None
    amount: Decimal = Decimal("0")
    status: str
    created_at: Optional[datetime] = None
    reason: Optional[str] = None


class PurgeReport(BaseModel):
    dry_run: bool
    total_found: int = 0
    eligible_for_cancel: int = 0
    with_conflicts: int = 0
    cancelled: int = 0
    total_amount: Decimal = Decimal("0")
    examples: list[PurgeRecord] = Field(default_factory=list)
    conflicts: list[PurgeRecord] = Field(default_factory=list)
    stop_reason: Optional[str] = None

    def audit_details(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"examples", "conflicts"})
