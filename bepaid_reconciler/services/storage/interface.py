"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run every reconciliation routine against an in-memory store in tests
2. Keep the Supabase query chains in one module
3. Keep business logic decoupled from table layout

The interface is intentionally narrow - we're not building an ORM.
Just the table operations the reconciliation routines need.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from bepaid_reconciler.models.audit import AuditEvent
from bepaid_reconciler.models.records import (
    CardLink,
    OrderRecord,
    PaymentMethodRecord,
    PaymentRecord,
    ProductMapping,
    ProfileRecord,
    QueueRecord,
)


class ReconciliationStorageInterface(ABC):
    """
    Abstract interface for the tables the reconciler touches.

    Any storage implementation (Supabase, in-memory, etc.)
    must implement these methods.
    """

    # =========================================================================
    # PROFILES
    # =========================================================================

    @abstractmethod
    async def get_profiles_by_emails(self, emails: list[str]) -> list[ProfileRecord]:
        """
        Look up profiles by email.

        Args:
            emails: Lowercased email addresses

        Returns:
            Profiles whose email matches case-insensitively
        """
        pass

    @abstractmethod
    async def list_named_profiles(self) -> list[ProfileRecord]:
        """
        List all profiles that have a full name.

        Returns:
            Profiles with a non-empty full_name
        """
        pass

    @abstractmethod
    async def get_profiles_by_user_ids(self, user_ids: list[str]) -> list[ProfileRecord]:
        """Map auth user ids to their profiles."""
        pass

    @abstractmethod
    async def create_ghost_profile(
        self,
        full_name: str,
        email: Optional[str] = None,
    ) -> ProfileRecord:
        """
        Create a placeholder profile for an unknown payer.

        Args:
            full_name: Display name (Cyrillic where possible)
            email: Customer email from the export, if any

        Returns:
            The created profile

        Raises:
            StorageError: If creation fails
        """
        pass

    # =========================================================================
    # CARDS
    # =========================================================================

    @abstractmethod
    async def get_card_links_by_last4(self, last4s: list[str]) -> list[CardLink]:
        """
        Get stored card-to-profile links for a set of card endings.

        Returns:
            Links with profile_name filled from the linked profile
        """
        pass

    @abstractmethod
    async def save_card_link(self, link: CardLink) -> bool:
        """
        Store a card-to-profile link.

        An existing link for the same last4 and holder is left untouched.

        Returns:
            True if a new link was stored
        """
        pass

    @abstractmethod
    async def get_active_payment_methods(
        self,
        last4s: list[str],
    ) -> list[PaymentMethodRecord]:
        """Active saved payment methods ending in any of the given digits."""
        pass

    # =========================================================================
    # RECONCILE QUEUE
    # =========================================================================

    @abstractmethod
    async def get_queue_by_uids(self, uids: list[str]) -> list[QueueRecord]:
        """
        Get queue rows by bePaid UID.

        Args:
            uids: Transaction UIDs

        Returns:
            Matching rows, at most one per UID
        """
        pass

    @abstractmethod
    async def insert_queue_record(self, data: dict[str, Any]) -> QueueRecord:
        """
        Insert a queue row.

        Args:
            data: Column values; bepaid_uid is required

        Returns:
            The inserted row with its id

        Raises:
            DuplicateError: If a row with the same bepaid_uid exists
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_queue_by_uid(self, uid: str, fields: dict[str, Any]) -> bool:
        """
        Update the queue row of a UID.

        Returns:
            True if updated

        Raises:
            NotFoundError: If no row has this UID
        """
        pass

    @abstractmethod
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
        """
        List queue rows with optional filters.

        Args:
            source: Exact source (e.g. 'file_import')
            statuses: Allowed status values
            created_from: created_at on or after
            created_to: created_at before
            card_last4: Exact card ending
            card_brand: Card brand, compared case-insensitively
            unlinked_only: Only rows without matched_profile_id
            limit: Maximum number of rows

        Returns:
            Rows ordered by created_at, newest first
        """
        pass

    @abstractmethod
    async def link_queue_profile(self, ids: list[str], profile_id: str) -> int:
        """
        Set matched_profile_id on rows that are still unlinked.

        Returns:
            Number of rows updated
        """
        pass

    @abstractmethod
    async def set_queue_status(self, ids: list[str], status: str) -> int:
        """
        Set the status of queue rows.

        Returns:
            Number of rows updated
        """
        pass

    # =========================================================================
    # PAYMENTS AND ORDERS
    # =========================================================================

    @abstractmethod
    async def get_payments_by_uids(self, uids: list[str]) -> list[PaymentRecord]:
        """
        Get confirmed payments by provider UID.

        Returns:
            Payments with their order embedded when one is linked
        """
        pass

    @abstractmethod
    async def list_payments(
        self,
        card_last4: Optional[str] = None,
        card_brand: Optional[str] = None,
        payment_token: Optional[str] = None,
        unlinked_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[PaymentRecord]:
        """
        List payments by card or by provider token.

        Args:
            card_last4: Exact card ending
            card_brand: Card brand, compared case-insensitively
            payment_token: Exact provider token
            unlinked_only: Only rows without profile_id
            limit: Maximum number of rows
        """
        pass

    @abstractmethod
    async def link_payment_profile(self, ids: list[str], profile_id: str) -> int:
        """
        Set profile_id on payments that are still unlinked.

        Returns:
            Number of rows updated
        """
        pass

    @abstractmethod
    async def list_product_mappings(self) -> list[ProductMapping]:
        """All bePaid plan title mappings."""
        pass

    @abstractmethod
    async def create_order_from_queue(
        self,
        queue_record: QueueRecord,
        profile_id: str,
        mapping: ProductMapping,
    ) -> OrderRecord:
        """
        Create an order (and its payment) from a queue row.

        Raises:
            StorageError: If the order cannot be created
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
