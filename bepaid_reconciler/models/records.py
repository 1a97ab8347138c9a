"""
Database Row Models

Typed views of the managed-database rows the reconciler reads and
writes. Field names follow the column names so rows can be loaded
with Model.model_validate(row) straight from a query result.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QueueSource(str, Enum):
    """Where a reconcile-queue row came from."""
    FILE_IMPORT = "file_import"
    MANUAL_RAW_SYNC = "manual_raw_sync"
    WEBHOOK = "webhook"


class QueueStatus(str, Enum):
    """Processing status of a reconcile-queue row."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @model_validator(mode="before")
    @classmethod
    def null_columns_use_defaults(cls, data: Any) -> Any:
        # NULL in a column with a default means "use the default"
        if not isinstance(data, dict):
            return data
        return {
            key: value
            for key, value in data.items()
            if value is not None
            or key not in cls.model_fields
            or cls.model_fields[key].is_required()
        }


class ProfileRecord(_Row):
    """A contact (profile) row."""

    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    user_id: Optional[str] = None
    phone: Optional[str] = None
    is_ghost: bool = Field(
        default=False,
        description="Placeholder created from an import, not a real signup"
    )


class CardLink(_Row):
    """A learned association between a card and a profile."""

    card_last4: str
    card_brand: Optional[str] = None
    card_holder: Optional[str] = None
    profile_id: str
    profile_name: Optional[str] = None


class PaymentMethodRecord(_Row):
    """A saved payment method of a registered user."""

    last4: Optional[str] = None
    brand: Optional[str] = None
    user_id: Optional[str] = None
    status: str = "active"


class OrderRecord(_Row):
    """The order a payment settled."""

    id: str
    order_number: Optional[str] = None
    final_price: Optional[Decimal] = None
    status: Optional[str] = None


class PaymentRecord(_Row):
    """A confirmed payment row (payments_v2)."""

    id: str
    provider_payment_id: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: str = "BYN"
    status: Optional[str] = None
    profile_id: Optional[str] = None
    order_id: Optional[str] = None
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None
    card_holder: Optional[str] = None
    customer_email: Optional[str] = None
    payment_token: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    order: Optional[OrderRecord] = None


class QueueRecord(_Row):
    """A staged, not yet confirmed provider transaction (payment_reconcile_queue)."""

    id: str
    bepaid_uid: Optional[str] = None
    bepaid_order_id: Optional[str] = None
    tracking_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "BYN"
    status: str = QueueStatus.PENDING.value
    status_normalized: Optional[str] = Field(
        default=None,
        description="Normalized provider status; older rows hold other wording (succeeded, declined...)"
    )
    transaction_type: Optional[str] = None
    source: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_surname: Optional[str] = None
    description: Optional[str] = None
    plan_title: Optional[str] = None
    product_code: Optional[str] = None
    card_last4: Optional[str] = None
    card_holder: Optional[str] = None
    card_brand: Optional[str] = None
    payment_method: Optional[str] = None
    matched_profile_id: Optional[str] = None
    matched_order_id: Optional[str] = None
    is_fee: bool = False
    last_error: Optional[str] = None
    attempts: int = 0
    paid_at: Optional[datetime] = None
    created_at_bepaid: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("status_normalized", mode="before")
    @classmethod
    def enum_to_value(cls, v: Any) -> Any:
        return v.value if isinstance(v, Enum) else v


class ProductMapping(_Row):
    """Maps a bePaid plan title to a product/tariff/offer."""

    bepaid_plan_title: str
    product_id: Optional[str] = None
    tariff_id: Optional[str] = None
    offer_id: Optional[str] = None
    auto_create_order: bool = False
