"""
Storage Services Package

Provides the abstract document-store contract, its implementations and
the typed repositories built on top of it.
Currently implements Google Sheets as the hosted backend, but designed
to be swappable.
"""

from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    Between,
    Document,
    DocumentPage,
    DocumentStoreInterface,
    DuplicateError,
    Equal,
    NotFoundError,
    Permission,
    PermissionDeniedError,
    StorageConnectionError,
    StorageError,
)
from finance_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)
from finance_tracker.services.storage.repositories import (
    BudgetRepository,
    GoalRepository,
    ProfileRepository,
    TransactionRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    "Document",
    "DocumentPage",
    "Between",
    "Equal",
    "Permission",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Repositories
    "BudgetRepository",
    "GoalRepository",
    "ProfileRepository",
    "TransactionRepository",
]
