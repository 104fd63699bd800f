"""
Abstract Document Store Interface

DESIGN DECISION: The application never talks to a database of its own.
Records live in a hosted document store, and we only depend on a small
contract with it:

    query(collection, filters, limit, offset) -> DocumentPage
    get(collection, id) -> document
    create(collection, id, fields, permissions) -> document
    update(collection, id, partial_fields) -> document
    delete(collection, id)

plus `upsert`, which enforces a logical key (e.g. one budget per user,
category and month) by query-before-write.

This allows us to:
1. Swap Google Sheets for another hosted store later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from the storage implementation

Documents are plain dicts. Store-managed metadata uses "$" keys
("$id", "$permissions", "$createdAt", "$updatedAt"); everything else is
a field. Dates travel as ISO strings.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import new_document_id


Document = dict[str, Any]

ID_KEY = "$id"
PERMISSIONS_KEY = "$permissions"
CREATED_AT_KEY = "$createdAt"
UPDATED_AT_KEY = "$updatedAt"

META_KEYS = (ID_KEY, PERMISSIONS_KEY, CREATED_AT_KEY, UPDATED_AT_KEY)


def to_cell(value: Any) -> str:
    """
    Normalize a field value to the string form the store compares on.

    Both store implementations filter on this form, so an in-memory
    document and a spreadsheet row match the same filters.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


# =============================================================================
# FILTERS
# =============================================================================

class Equal:
    """Field equals value."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value

    def matches(self, document: Document) -> bool:
        return to_cell(document.get(self.field)) == to_cell(self.value)

    def __repr__(self) -> str:
        return f"Equal({self.field!r}, {self.value!r})"


class Between:
    """
    Field lies in [low, high], inclusive.

    Compared on the normalized string form, which orders ISO dates
    correctly. Not meant for numeric fields.
    """

    def __init__(self, field: str, low: Any, high: Any):
        self.field = field
        self.low = low
        self.high = high

    def matches(self, document: Document) -> bool:
        value = to_cell(document.get(self.field))
        if not value:
            return False
        return to_cell(self.low) <= value <= to_cell(self.high)

    def __repr__(self) -> str:
        return f"Between({self.field!r}, {self.low!r}, {self.high!r})"


Filter = Equal | Between


def matches_all(document: Document, filters: Sequence[Filter]) -> bool:
    return all(f.matches(document) for f in filters)


# =============================================================================
# PERMISSIONS
# =============================================================================

class Permission:
    """
    Per-document permission strings, scoped to a single user.

    Stored on each document under "$permissions".
    """

    @staticmethod
    def read(user_id: str) -> str:
        return f'read("user:{user_id}")'

    @staticmethod
    def write(user_id: str) -> str:
        return f'write("user:{user_id}")'

    @staticmethod
    def owner(user_id: str) -> list[str]:
        """Read and write for exactly one user."""
        return [Permission.read(user_id), Permission.write(user_id)]


def can_read(document: Document, user_id: str) -> bool:
    return Permission.read(user_id) in document.get(PERMISSIONS_KEY, [])


def can_write(document: Document, user_id: str) -> bool:
    return Permission.write(user_id) in document.get(PERMISSIONS_KEY, [])


class DocumentPage(BaseModel):
    """Result of a paginated query."""

    documents: list[Document] = Field(default_factory=list)
    total: int = Field(
        ge=0,
        description="Number of matching documents before pagination"
    )


# =============================================================================
# INTERFACES
# =============================================================================

class DocumentStoreInterface(ABC):
    """
    Abstract interface for the hosted document store.

    Every method accepts an optional `owner`. When given, the operation
    is performed on behalf of that user and the document's permissions
    are enforced (reads skip or reject documents the owner can't read,
    writes raise PermissionDeniedError).
    """

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int = 25,
        offset: int = 0,
        owner: Optional[str] = None,
    ) -> DocumentPage:
        """
        List documents matching all filters.

        Args:
            collection: Collection name
            filters: Equality / range filters, combined with AND
            limit: Maximum number of documents returned
            offset: Number of matching documents to skip
            owner: Restrict to documents this user may read

        Returns:
            The requested page and the total match count
        """
        pass

    @abstractmethod
    async def get(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> Document:
        """
        Fetch a document by id.

        Raises:
            NotFoundError: If no such document exists
            PermissionDeniedError: If owner may not read it
        """
        pass

    @abstractmethod
    async def create(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        permissions: Optional[list[str]] = None,
    ) -> Document:
        """
        Create a document under a caller-chosen id.

        Raises:
            DuplicateError: If the id is already taken
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        owner: Optional[str] = None,
    ) -> Document:
        """
        Merge `fields` into an existing document.

        Raises:
            NotFoundError: If no such document exists
            PermissionDeniedError: If owner may not write it
        """
        pass

    @abstractmethod
    async def delete(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> None:
        """
        Delete a document.

        Raises:
            NotFoundError: If no such document exists
            PermissionDeniedError: If owner may not write it
        """
        pass

    async def upsert(
        self,
        collection: str,
        key_filters: Sequence[Filter],
        create_fields: Document,
        apply_update: Callable[[Document], Document],
        permissions: Optional[list[str]] = None,
        owner: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> tuple[Document, bool]:
        """
        Update the document identified by a logical key, or create it.

        The key is expressed as filters; the first match is updated with
        the partial fields returned by `apply_update(existing)`. Otherwise a
        document is created from `create_fields` under `document_id` (a
        generated id when None).

        Returns:
            (document, created)
        """
        page = await self.query(collection, key_filters, limit=1, offset=0, owner=owner)
        if page.documents:
            existing = page.documents[0]
            updated = await self.update(
                collection,
                existing[ID_KEY],
                apply_update(existing),
                owner=owner,
            )
            return updated, False

        created = await self.create(
            collection,
            document_id or new_document_id(),
            create_fields,
            permissions=permissions,
        )
        return created, True


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
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


class PermissionDeniedError(StorageError):
    """Document permissions don't allow the requested access."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
