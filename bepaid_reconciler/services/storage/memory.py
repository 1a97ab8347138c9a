"""
In-Memory Storage Implementation

Dict-backed implementation of both storage interfaces. Used by the
test-suite and for offline dry runs of an import against a snapshot.

Rows are kept as plain dicts, exactly like the database returns
them, and validated into models on the way out.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from bepaid_reconciler.models.audit import AuditEvent
from bepaid_reconciler.models.records import (
    CardLink,
    OrderRecord,
    PaymentMethodRecord,
    PaymentRecord,
    ProductMapping,
    ProfileRecord,
    QueueRecord,
    QueueStatus,
)
from bepaid_reconciler.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    ReconciliationStorageInterface,
)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _same_brand(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").lower() == (b or "").lower()


class InMemoryStorage(ReconciliationStorageInterface, AuditStorageInterface):
    """
    In-memory storage for tests and offline runs.

    The add_* helpers seed tables; they accept the same column
    names as the database.
    """

    def __init__(self):
        self.profiles: dict[str, dict[str, Any]] = {}
        self.card_links: list[dict[str, Any]] = []
        self.payment_methods: list[dict[str, Any]] = []
        self.queue: dict[str, dict[str, Any]] = {}
        self.payments: dict[str, dict[str, Any]] = {}
        self.orders: dict[str, dict[str, Any]] = {}
        self.product_mappings: list[dict[str, Any]] = []
        self.audit_events: list[AuditEvent] = []

    # =========================================================================
    # SEEDING
    # =========================================================================

    def add_profile(self, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        self.profiles[row["id"]] = row
        return row

    def add_card_link(self, **row: Any) -> dict[str, Any]:
        self.card_links.append(row)
        return row

    def add_payment_method(self, **row: Any) -> dict[str, Any]:
        row.setdefault("status", "active")
        self.payment_methods.append(row)
        return row

    def add_queue_row(self, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        row.setdefault("status", QueueStatus.PENDING.value)
        row.setdefault("created_at", _now())
        self.queue[row["id"]] = row
        return row

    def add_payment(self, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        self.payments[row["id"]] = row
        return row

    def add_order(self, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        self.orders[row["id"]] = row
        return row

    def add_product_mapping(self, **row: Any) -> dict[str, Any]:
        self.product_mappings.append(row)
        return row

    # =========================================================================
    # PROFILES
    # =========================================================================

    async def get_profiles_by_emails(self, emails: list[str]) -> list[ProfileRecord]:
        wanted = {e.lower() for e in emails}
        return [
            ProfileRecord.model_validate(p)
            for p in self.profiles.values()
            if p.get("email") and p["email"].lower() in wanted
        ]

    async def list_named_profiles(self) -> list[ProfileRecord]:
        return [
            ProfileRecord.model_validate(p)
            for p in self.profiles.values()
            if p.get("full_name")
        ]

    async def get_profiles_by_user_ids(self, user_ids: list[str]) -> list[ProfileRecord]:
        wanted = set(user_ids)
        return [
            ProfileRecord.model_validate(p)
            for p in self.profiles.values()
            if p.get("user_id") in wanted
        ]

    async def create_ghost_profile(
        self,
        full_name: str,
        email: Optional[str] = None,
    ) -> ProfileRecord:
        row = self.add_profile(full_name=full_name, email=email, is_ghost=True)
        return ProfileRecord.model_validate(row)

    # =========================================================================
    # CARDS
    # =========================================================================

    async def get_card_links_by_last4(self, last4s: list[str]) -> list[CardLink]:
        wanted = set(last4s)
        links = []
        for link in self.card_links:
            if link.get("card_last4") not in wanted:
                continue
            profile = self.profiles.get(link.get("profile_id"), {})
            links.append(CardLink.model_validate({
                **link,
                "profile_name": profile.get("full_name"),
            }))
        return links

    async def save_card_link(self, link: CardLink) -> bool:
        for existing in self.card_links:
            if (
                existing.get("card_last4") == link.card_last4
                and (existing.get("card_holder") or "") == (link.card_holder or "")
            ):
                return False
        self.card_links.append(link.model_dump(exclude={"profile_name"}))
        return True

    async def get_active_payment_methods(
        self,
        last4s: list[str],
    ) -> list[PaymentMethodRecord]:
        wanted = set(last4s)
        return [
            PaymentMethodRecord.model_validate(m)
            for m in self.payment_methods
            if m.get("last4") in wanted and m.get("status") == "active"
        ]

    # =========================================================================
    # RECONCILE QUEUE
    # =========================================================================

    def _queue_row_by_uid(self, uid: str) -> Optional[dict[str, Any]]:
        for row in self.queue.values():
            if row.get("bepaid_uid") == uid:
                return row
        return None

    async def get_queue_by_uids(self, uids: list[str]) -> list[QueueRecord]:
        wanted = set(uids)
        return [
            QueueRecord.model_validate(row)
            for row in self.queue.values()
            if row.get("bepaid_uid") in wanted
        ]

    async def insert_queue_record(self, data: dict[str, Any]) -> QueueRecord:
        uid = data.get("bepaid_uid")
        if uid and self._queue_row_by_uid(uid) is not None:
            raise DuplicateError(f"Queue row already exists for UID {uid}")
        row = self.add_queue_row(**{**data, "updated_at": _now()})
        return QueueRecord.model_validate(row)

    async def update_queue_by_uid(self, uid: str, fields: dict[str, Any]) -> bool:
        row = self._queue_row_by_uid(uid)
        if row is None:
            raise NotFoundError(f"No queue row for UID {uid}")
        row.update(fields)
        row["updated_at"] = _now()
        return True

    async def list_queue(
        self,
        source: Optional[str] = None,
        statuses: Optional[list[str]] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        card_last4: Optional[str] = None,
        card_brand: Optional[str] = None,
        unlinked_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[QueueRecord]:
        rows = []
        for row in self.queue.values():
            created_at = _naive(row.get("created_at"))
            if source is not None and row.get("source") != source:
                continue
            if statuses is not None and row.get("status") not in statuses:
                continue
            if created_from is not None and (created_at is None or created_at < _naive(created_from)):
                continue
            if created_to is not None and (created_at is None or created_at >= _naive(created_to)):
                continue
            if card_last4 is not None and row.get("card_last4") != card_last4:
                continue
            if card_brand is not None and not _same_brand(row.get("card_brand"), card_brand):
                continue
            if unlinked_only and row.get("matched_profile_id"):
                continue
            rows.append(row)

        rows.sort(key=lambda r: _naive(r.get("created_at")) or datetime.min, reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [QueueRecord.model_validate(r) for r in rows]

    async def link_queue_profile(self, ids: list[str], profile_id: str) -> int:
        updated = 0
        for queue_id in ids:
            row = self.queue.get(queue_id)
            if row is not None and not row.get("matched_profile_id"):
                row["matched_profile_id"] = profile_id
                row["updated_at"] = _now()
                updated += 1
        return updated

    async def set_queue_status(self, ids: list[str], status: str) -> int:
        updated = 0
        for queue_id in ids:
            row = self.queue.get(queue_id)
            if row is not None:
                row["status"] = status
                row["updated_at"] = _now()
                updated += 1
        return updated

    # =========================================================================
    # PAYMENTS AND ORDERS
    # =========================================================================

    def _payment_with_order(self, row: dict[str, Any]) -> PaymentRecord:
        order = self.orders.get(row.get("order_id")) if row.get("order_id") else None
        return PaymentRecord.model_validate({**row, "order": order})

    async def get_payments_by_uids(self, uids: list[str]) -> list[PaymentRecord]:
        wanted = set(uids)
        return [
            self._payment_with_order(row)
            for row in self.payments.values()
            if row.get("provider_payment_id") in wanted
        ]

    async def list_payments(
        self,
        card_last4: Optional[str] = None,
        card_brand: Optional[str] = None,
        payment_token: Optional[str] = None,
        unlinked_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[PaymentRecord]:
        rows = []
        for row in self.payments.values():
            if card_last4 is not None and row.get("card_last4") != card_last4:
                continue
            if card_brand is not None and not _same_brand(row.get("card_brand"), card_brand):
                continue
            if payment_token is not None and row.get("payment_token") != payment_token:
                continue
            if unlinked_only and row.get("profile_id"):
                continue
            rows.append(row)
        if limit is not None:
            rows = rows[:limit]
        return [self._payment_with_order(r) for r in rows]

    async def link_payment_profile(self, ids: list[str], profile_id: str) -> int:
        updated = 0
        for payment_id in ids:
            row = self.payments.get(payment_id)
            if row is not None and not row.get("profile_id"):
                row["profile_id"] = profile_id
                updated += 1
        return updated

    async def list_product_mappings(self) -> list[ProductMapping]:
        return [ProductMapping.model_validate(m) for m in self.product_mappings]

    async def create_order_from_queue(
        self,
        queue_record: QueueRecord,
        profile_id: str,
        mapping: ProductMapping,
    ) -> OrderRecord:
        order = self.add_order(
            order_number=f"ORD-{len(self.orders) + 1:05d}",
            final_price=queue_record.amount or Decimal("0"),
            status="paid",
            profile_id=profile_id,
            product_id=mapping.product_id,
            tariff_id=mapping.tariff_id,
            offer_id=mapping.offer_id,
        )
        self.add_payment(
            provider_payment_id=queue_record.bepaid_uid,
            amount=queue_record.amount or Decimal("0"),
            currency=queue_record.currency,
            status="succeeded",
            profile_id=profile_id,
            order_id=order["id"],
            card_last4=queue_record.card_last4,
            card_brand=queue_record.card_brand,
            paid_at=queue_record.paid_at,
        )
        row = self.queue.get(queue_record.id)
        if row is not None:
            row["status"] = QueueStatus.COMPLETED.value
            row["matched_order_id"] = order["id"]
        return OrderRecord.model_validate(order)

    # =========================================================================
    # AUDIT
    # =========================================================================

    async def append_event(self, event: AuditEvent) -> bool:
        self.audit_events.append(event)
        return True
