"""Services package."""

from bepaid_reconciler.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    InMemoryStorage,
    NotFoundError,
    ReconciliationStorageInterface,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseReconciliationStorage,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ReconciliationStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "InMemoryStorage",
    "NotFoundError",
    "StorageError",
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseReconciliationStorage",
]
