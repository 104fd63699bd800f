"""Services package: clients of the hosted collaborators."""

from finance_tracker.services.blob import (
    AvatarUploadError,
    BlobStoreError,
    CloudinaryAvatarStore,
    InvalidAvatarError,
)
from finance_tracker.services.identity import (
    AccountExistsError,
    DocumentStoreIdentityProvider,
    IdentityError,
    IdentityProviderInterface,
    InvalidCredentialsError,
    NotAuthenticatedError,
    User,
)
from finance_tracker.services.storage import (
    AuditStorageInterface,
    BudgetRepository,
    DocumentStoreInterface,
    DuplicateError,
    GoalRepository,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    NotFoundError,
    PermissionDeniedError,
    ProfileRepository,
    StorageConnectionError,
    StorageError,
    TransactionRepository,
)

__all__ = [
    # Blob store
    "AvatarUploadError",
    "BlobStoreError",
    "CloudinaryAvatarStore",
    "InvalidAvatarError",
    # Identity
    "AccountExistsError",
    "DocumentStoreIdentityProvider",
    "IdentityError",
    "IdentityProviderInterface",
    "InvalidCredentialsError",
    "NotAuthenticatedError",
    "User",
    # Storage
    "AuditStorageInterface",
    "BudgetRepository",
    "DocumentStoreInterface",
    "DuplicateError",
    "GoalRepository",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    "NotFoundError",
    "PermissionDeniedError",
    "ProfileRepository",
    "StorageConnectionError",
    "StorageError",
    "TransactionRepository",
]
