"""
Transaction Models for bePaid Reconciler

These models define the schema of a single bePaid transaction as it
flows through the pipeline:

    export row → ParsedTransaction → matched → classified → imported

DESIGN DECISION: One mutable model carries the whole lifecycle.
Matching, classification and import annotate the same object, so
the final import report shows exactly how each record was handled.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class NormalizedStatus(str, Enum):
    """
    Provider status reduced to the values the queue understands.

    The export mixes Russian and English wording, transaction types
    and free-text decline messages. All of it collapses to these.
    """
    SUCCESSFUL = "successful"
    FAILED = "failed"
    PENDING = "pending"
    REFUND = "refund"
    CANCEL = "cancel"


class MatchedBy(str, Enum):
    """Which strategy linked the transaction to a contact."""
    EMAIL = "email"
    CARD = "card"
    NAME = "name"
    GHOST_CREATED = "ghost_created"
    NONE = "none"


class ReconcileStatus(str, Enum):
    """
    Classification against what is already stored.

    NEW      - not seen anywhere
    MATCH    - already stored and identical (or already a payment)
    UPDATE   - queued, but we now know the contact
    CONFLICT - queued with a different status or amount
    """
    NEW = "new"
    MATCH = "match"
    UPDATE = "update"
    CONFLICT = "conflict"


class ImportStatus(str, Enum):
    """Per-record outcome of a batch import."""
    PENDING = "pending"
    EXISTS = "exists"
    IMPORTED = "imported"
    UPDATED = "updated"
    ORDER_CREATED = "order_created"
    ERROR = "error"


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class ParsedTransaction(BaseModel):
    """
    A bePaid transaction normalized from one export row.

    Only uid, status and amount are guaranteed. Everything else
    depends on which columns the export happened to contain.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    uid: str = Field(
        ...,
        min_length=1,
        description="bePaid transaction UID"
    )
    bepaid_order_id: Optional[str] = None
    tracking_id: Optional[str] = None

    # Status
    status: str = Field(
        default="Unknown",
        description="Status exactly as exported"
    )
    status_normalized: NormalizedStatus = NormalizedStatus.PENDING
    transaction_type: str = Field(
        default="Платеж",
        description="Transaction type exactly as exported"
    )
    message: Optional[str] = None
    reason: Optional[str] = None

    # Money
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Transaction amount"
    )
    currency: str = Field(default="BYN", max_length=3)
    fee_percent: Optional[Decimal] = None
    fee_amount: Optional[Decimal] = None
    total_fee: Optional[Decimal] = None
    transferred_amount: Optional[Decimal] = None

    # Dates
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    transferred_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    # Description
    description: Optional[str] = None
    product_code: Optional[str] = None

    # Shop
    shop_id: Optional[str] = None
    shop_name: Optional[str] = None
    business_category: Optional[str] = None

    # Customer
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_surname: Optional[str] = None
    customer_address: Optional[str] = None
    customer_country: Optional[str] = None
    customer_city: Optional[str] = None
    customer_zip: Optional[str] = None
    customer_state: Optional[str] = None
    customer_phone: Optional[str] = None
    ip_address: Optional[str] = None

    # Card
    card_last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    card_holder: Optional[str] = None
    card_brand: Optional[str] = None
    payment_method: Optional[str] = None
    card_valid_until: Optional[str] = None
    card_bin: Optional[str] = None
    card_bank: Optional[str] = None
    card_bank_country: Optional[str] = None
    three_d_secure: Optional[bool] = None
    avs_result: Optional[str] = None
    fraud_result: Optional[str] = None
    auth_code: Optional[str] = None
    rrn: Optional[str] = None

    # Matching (filled by ContactMatcher)
    matched_profile_id: Optional[str] = None
    matched_profile_name: Optional[str] = None
    matched_by: MatchedBy = MatchedBy.NONE

    # Reconciliation (filled by classifier)
    reconcile_status: Optional[ReconcileStatus] = None
    existing_record: Optional[dict[str, Any]] = None

    # Import (filled by BatchImporter)
    import_status: ImportStatus = ImportStatus.PENDING
    import_error: Optional[str] = None
    order_id: Optional[str] = None
    auto_created_order: bool = False

    @field_validator('customer_email')
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        """Emails compare case-insensitively everywhere."""
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @property
    def customer_full_name(self) -> Optional[str]:
        """First and last name as entered on the payment page."""
        parts = [p for p in (self.customer_name, self.customer_surname) if p]
        return " ".join(parts) or None

    @property
    def is_matched(self) -> bool:
        return self.matched_profile_id is not None

    def to_payload(self) -> dict[str, Any]:
        """
        Serializable snapshot stored as raw_payload on the queue row.

        Reconciliation bookkeeping is excluded so the payload only
        describes what the provider exported.
        """
        return self.model_dump(
            mode="json",
            exclude={"existing_record", "import_status", "import_error"},
            exclude_none=True,
        )


class RawTransaction(BaseModel):
    """
    A transaction fetched directly from the provider API.

    Smaller than ParsedTransaction: the API listing only exposes
    what is needed to stage the record in the queue.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    uid: str = Field(..., min_length=1)
    status: str
    amount: Decimal = Decimal("0")
    currency: str = "BYN"
    tracking_id: Optional[str] = None
    customer_email: Optional[str] = None
    card_last_4: Optional[str] = None
    card_holder: Optional[str] = None
    card_brand: Optional[str] = None
    plan_title: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_successful(self) -> bool:
        return self.status.lower() == "successful"
