"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Supabase is the production backend; the in-memory store backs tests.
"""

from bepaid_reconciler.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    ReconciliationStorageInterface,
    StorageError,
)
from bepaid_reconciler.services.storage.memory import InMemoryStorage
from bepaid_reconciler.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseReconciliationStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ReconciliationStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryStorage",
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseReconciliationStorage",
]
