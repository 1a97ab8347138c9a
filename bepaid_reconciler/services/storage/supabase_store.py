"""
Supabase Storage Implementation

DESIGN DECISION: The reconciler talks to the managed Postgres only
through PostgREST table calls (supabase-py), never raw SQL:
1. Same table contracts as the admin app and the edge functions
2. No database driver or connection pool to manage
3. Edge functions and triggers keep working unchanged

TRADEOFFS:
- IN (...) filters are URL encoded, so long UID lists are chunked
- No multi-table transactions (we order writes so a retry is safe)

The implementation follows the abstract interface, so the routines
never see a query builder.
"""

import json
import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Optional

from supabase import Client, create_client
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bepaid_reconciler.config import get_settings
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
    ConnectionError,
    DuplicateError,
    NotFoundError,
    ReconciliationStorageInterface,
    StorageError,
)


# Table names
PROFILES = "profiles"
CARD_LINKS = "card_profile_links"
PAYMENT_METHODS = "payment_methods"
QUEUE = "payment_reconcile_queue"
PAYMENTS = "payments_v2"
ORDERS = "orders_v2"
PRODUCT_MAPPINGS = "bepaid_product_mappings"
AUDIT_LOGS = "audit_logs"

PAYMENT_COLUMNS = (
    "id, provider_payment_id, amount, currency, status, profile_id, order_id, "
    "card_last4, card_brand, card_holder, customer_email, payment_token, "
    "paid_at, created_at, order:order_id(id, order_number, final_price, status)"
)

UNIQUE_VIOLATION = "23505"

# Failed calls are retried; NotFoundError and DuplicateError are final
_retry = retry(
    retry=(
        retry_if_exception_type(StorageError)
        & retry_if_not_exception_type((NotFoundError, DuplicateError))
    ),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    """Decimals and datetimes as JSON-safe values for PostgREST."""
    return json.loads(json.dumps(data, default=str))


def _chunks(values: list[str], size: int) -> Iterator[list[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def _payment_from_row(row: dict[str, Any]) -> PaymentRecord:
    # Embedded as "order" through the order_id foreign key
    return PaymentRecord.model_validate(row)


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Reads the connection settings up front and creates the client
    lazily on the first table call.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client
        self._settings = get_settings().supabase

    @_retry
    def connect(self) -> Client:
        """Create the Supabase client with the service role key."""
        if self._client is None:
            try:
                self._client = create_client(
                    self._settings.url,
                    self._settings.service_role_key,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client

    def table(self, name: str):
        return self.connect().table(name)

    @property
    def chunk_size(self) -> int:
        return self._settings.in_chunk_size


class SupabaseReconciliationStorage(ReconciliationStorageInterface):
    """
    Supabase implementation of reconciliation storage.

    Reads and idempotent updates are retried with exponential backoff.
    Inserts are not retried, so a timeout never doubles a row.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    def _select_in(
        self,
        table: str,
        columns: str,
        column: str,
        values: list[str],
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        unique = sorted(set(v for v in values if v))
        for chunk in _chunks(unique, self._client.chunk_size):
            response = (
                self._client.table(table)
                .select(columns)
                .in_(column, chunk)
                .execute()
            )
            rows.extend(response.data or [])
        return rows

    # =========================================================================
    # PROFILES
    # =========================================================================

    @_retry
    async def get_profiles_by_emails(self, emails: list[str]) -> list[ProfileRecord]:
        try:
            rows = self._select_in(PROFILES, "id, full_name, email, user_id", "email", emails)
        except Exception as e:
            raise StorageError(f"Failed to load profiles by email: {e}")
        return [ProfileRecord.model_validate(r) for r in rows]

    @_retry
    async def list_named_profiles(self) -> list[ProfileRecord]:
        try:
            response = (
                self._client.table(PROFILES)
                .select("id, full_name, email, user_id")
                .not_.is_("full_name", "null")
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to load profiles: {e}")
        return [ProfileRecord.model_validate(r) for r in response.data or []]

    @_retry
    async def get_profiles_by_user_ids(self, user_ids: list[str]) -> list[ProfileRecord]:
        try:
            rows = self._select_in(PROFILES, "id, full_name, email, user_id", "user_id", user_ids)
        except Exception as e:
            raise StorageError(f"Failed to load profiles by user: {e}")
        return [ProfileRecord.model_validate(r) for r in rows]

    async def create_ghost_profile(
        self,
        full_name: str,
        email: Optional[str] = None,
    ) -> ProfileRecord:
        try:
            response = (
                self._client.table(PROFILES)
                .insert({
                    "full_name": full_name,
                    "email": email,
                    "status": "ghost",
                    "source": "bepaid_import",
                })
                .execute()
            )
            row = response.data[0]
            return ProfileRecord.model_validate({**row, "is_ghost": True})
        except Exception as e:
            raise StorageError(f"Failed to create ghost profile: {e}")

    # =========================================================================
    # CARDS
    # =========================================================================

    @_retry
    async def get_card_links_by_last4(self, last4s: list[str]) -> list[CardLink]:
        try:
            rows = self._select_in(
                CARD_LINKS,
                "card_last4, card_brand, card_holder, profile_id, profiles:profile_id(full_name)",
                "card_last4",
                last4s,
            )
        except Exception as e:
            raise StorageError(f"Failed to load card links: {e}")

        links = []
        for row in rows:
            profile = row.pop("profiles", None) or {}
            links.append(CardLink.model_validate({
                **row,
                "profile_name": profile.get("full_name"),
            }))
        return links

    async def save_card_link(self, link: CardLink) -> bool:
        try:
            response = (
                self._client.table(CARD_LINKS)
                .upsert(
                    link.model_dump(exclude={"profile_name"}),
                    on_conflict="card_last4,card_holder",
                    ignore_duplicates=True,
                )
                .execute()
            )
            return bool(response.data)
        except Exception as e:
            raise StorageError(f"Failed to save card link: {e}")

    @_retry
    async def get_active_payment_methods(
        self,
        last4s: list[str],
    ) -> list[PaymentMethodRecord]:
        try:
            rows = self._select_in(
                PAYMENT_METHODS, "last4, brand, user_id, status", "last4", last4s
            )
        except Exception as e:
            raise StorageError(f"Failed to load payment methods: {e}")
        return [
            PaymentMethodRecord.model_validate(r)
            for r in rows
            if r.get("status") == "active"
        ]

    # =========================================================================
    # RECONCILE QUEUE
    # =========================================================================

    @_retry
    async def get_queue_by_uids(self, uids: list[str]) -> list[QueueRecord]:
        try:
            rows = self._select_in(QUEUE, "*", "bepaid_uid", uids)
        except Exception as e:
            raise StorageError(f"Failed to load queue rows: {e}")
        return [QueueRecord.model_validate(r) for r in rows]

    async def insert_queue_record(self, data: dict[str, Any]) -> QueueRecord:
        try:
            response = self._client.table(QUEUE).insert(_jsonable(data)).execute()
            return QueueRecord.model_validate(response.data[0])
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateError(f"Queue row already exists for UID {data.get('bepaid_uid')}")
            raise StorageError(f"Failed to insert queue row: {e}")

    @_retry
    async def update_queue_by_uid(self, uid: str, fields: dict[str, Any]) -> bool:
        try:
            payload = _jsonable({
                **fields,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            response = (
                self._client.table(QUEUE)
                .update(payload)
                .eq("bepaid_uid", uid)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update queue row: {e}")
        if not response.data:
            raise NotFoundError(f"No queue row for UID {uid}")
        return True

    @_retry
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
        try:
            query = self._client.table(QUEUE).select("*")
            if source is not None:
                query = query.eq("source", source)
            if statuses is not None:
                query = query.in_("status", statuses)
            if created_from is not None:
                query = query.gte("created_at", created_from.isoformat())
            if created_to is not None:
                query = query.lt("created_at", created_to.isoformat())
            if card_last4 is not None:
                query = query.eq("card_last4", card_last4)
            if card_brand is not None:
                query = query.ilike("card_brand", card_brand)
            if unlinked_only:
                query = query.is_("matched_profile_id", "null")
            query = query.order("created_at", desc=True)
            if limit is not None:
                query = query.limit(limit)
            response = query.execute()
        except Exception as e:
            raise StorageError(f"Failed to list queue rows: {e}")
        return [QueueRecord.model_validate(r) for r in response.data or []]

    async def link_queue_profile(self, ids: list[str], profile_id: str) -> int:
        updated = 0
        try:
            for chunk in _chunks(ids, self._client.chunk_size):
                response = (
                    self._client.table(QUEUE)
                    .update({
                        "matched_profile_id": profile_id,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    })
                    .in_("id", chunk)
                    .is_("matched_profile_id", "null")
                    .execute()
                )
                updated += len(response.data or [])
        except Exception as e:
            raise StorageError(f"Failed to link queue rows: {e}")
        return updated

    async def set_queue_status(self, ids: list[str], status: str) -> int:
        updated = 0
        try:
            for chunk in _chunks(ids, self._client.chunk_size):
                response = (
                    self._client.table(QUEUE)
                    .update({
                        "status": status,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    })
                    .in_("id", chunk)
                    .execute()
                )
                updated += len(response.data or [])
        except Exception as e:
            raise StorageError(f"Failed to update queue status: {e}")
        return updated

    # =========================================================================
    # PAYMENTS AND ORDERS
    # =========================================================================

    @_retry
    async def get_payments_by_uids(self, uids: list[str]) -> list[PaymentRecord]:
        try:
            rows = self._select_in(PAYMENTS, PAYMENT_COLUMNS, "provider_payment_id", uids)
        except Exception as e:
            raise StorageError(f"Failed to load payments: {e}")
        return [_payment_from_row(r) for r in rows]

    @_retry
    async def list_payments(
        self,
        card_last4: Optional[str] = None,
        card_brand: Optional[str] = None,
        payment_token: Optional[str] = None,
        unlinked_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[PaymentRecord]:
        try:
            query = self._client.table(PAYMENTS).select(PAYMENT_COLUMNS)
            if card_last4 is not None:
                query = query.eq("card_last4", card_last4)
            if card_brand is not None:
                query = query.ilike("card_brand", card_brand)
            if payment_token is not None:
                query = query.eq("payment_token", payment_token)
            if unlinked_only:
                query = query.is_("profile_id", "null")
            if limit is not None:
                query = query.limit(limit)
            response = query.execute()
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}")
        return [_payment_from_row(r) for r in response.data or []]

    async def link_payment_profile(self, ids: list[str], profile_id: str) -> int:
        updated = 0
        try:
            for chunk in _chunks(ids, self._client.chunk_size):
                response = (
                    self._client.table(PAYMENTS)
                    .update({
                        "profile_id": profile_id,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    })
                    .in_("id", chunk)
                    .is_("profile_id", "null")
                    .execute()
                )
                updated += len(response.data or [])
        except Exception as e:
            raise StorageError(f"Failed to link payments: {e}")
        return updated

    @_retry
    async def list_product_mappings(self) -> list[ProductMapping]:
        try:
            response = self._client.table(PRODUCT_MAPPINGS).select("*").execute()
        except Exception as e:
            raise StorageError(f"Failed to load product mappings: {e}")
        return [ProductMapping.model_validate(r) for r in response.data or []]

    async def create_order_from_queue(
        self,
        queue_record: QueueRecord,
        profile_id: str,
        mapping: ProductMapping,
    ) -> OrderRecord:
        amount = queue_record.amount or Decimal("0")
        paid_at = queue_record.paid_at or queue_record.created_at
        order_number = f"BP-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"

        try:
            profile_response = (
                self._client.table(PROFILES)
                .select("id, user_id, email")
                .eq("id", profile_id)
                .execute()
            )
            if not profile_response.data:
                raise NotFoundError(f"Profile not found: {profile_id}")
            profile = profile_response.data[0]

            order_response = (
                self._client.table(ORDERS)
                .insert(_jsonable({
                    "order_number": order_number,
                    "user_id": profile.get("user_id") or profile["id"],
                    "product_id": mapping.product_id,
                    "tariff_id": mapping.tariff_id,
                    "status": "paid",
                    "final_price": amount,
                    "base_price": amount,
                    "currency": queue_record.currency,
                    "customer_email": queue_record.customer_email or profile.get("email"),
                    "reconcile_source": "bepaid_import",
                    "purchase_snapshot": {
                        "imported_from": "bepaid_queue",
                        "bepaid_plan_title": mapping.bepaid_plan_title,
                        "bepaid_uid": queue_record.bepaid_uid,
                        "offer_id": mapping.offer_id,
                    },
                    "meta": {
                        "card_holder": queue_record.card_holder,
                        "card_last4": queue_record.card_last4,
                        "card_brand": queue_record.card_brand,
                        "purchased_at": paid_at,
                    },
                }))
                .execute()
            )
            order = order_response.data[0]

            existing = (
                self._client.table(PAYMENTS)
                .select("id")
                .eq("provider_payment_id", queue_record.bepaid_uid)
                .execute()
            )
            if not existing.data:
                self._client.table(PAYMENTS).insert(_jsonable({
                    "order_id": order["id"],
                    "user_id": profile.get("user_id") or profile["id"],
                    "profile_id": profile_id,
                    "amount": amount,
                    "currency": queue_record.currency,
                    "status": "succeeded",
                    "provider": "bepaid",
                    "provider_payment_id": queue_record.bepaid_uid,
                    "card_last4": queue_record.card_last4,
                    "card_brand": queue_record.card_brand,
                    "paid_at": paid_at,
                    "provider_response": queue_record.raw_payload,
                })).execute()

            self._client.table(QUEUE).update({
                "status": QueueStatus.COMPLETED.value,
                "last_error": None,
                "matched_profile_id": profile_id,
                "matched_order_id": order["id"],
            }).eq("id", queue_record.id).execute()

            return OrderRecord.model_validate(order)
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create order: {e}")


class SupabaseAuditStorage(AuditStorageInterface):
    """
    Supabase implementation of audit log storage.

    Audit events are append-only rows in audit_logs.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            row = {
                **event.to_db_row(),
                "actor_type": "system",
                "actor_label": "bepaid_reconciler",
            }
            self._client.table(AUDIT_LOGS).insert(row).execute()
            return True
        except Exception as e:
            raise StorageError(f"Failed to append audit event: {e}")
