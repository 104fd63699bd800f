"""
In-Memory Storage Implementation

Used by the test suite and for running the flows without a configured
spreadsheet. Behaves like the hosted store as far as the interface goes:
filters, pagination, permissions and "$" metadata all match.

Documents are copied on the way in and out, so callers never share
state with the store.
"""

import copy
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.services.storage.interface import (
    CREATED_AT_KEY,
    ID_KEY,
    META_KEYS,
    PERMISSIONS_KEY,
    UPDATED_AT_KEY,
    AuditStorageInterface,
    Document,
    DocumentPage,
    DocumentStoreInterface,
    DuplicateError,
    Filter,
    NotFoundError,
    PermissionDeniedError,
    can_read,
    can_write,
    matches_all,
)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dict-backed document store. Insertion order is query order."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def _find(self, collection: str, document_id: str) -> Document:
        try:
            return self._collection(collection)[document_id]
        except KeyError:
            raise NotFoundError(f"Document not found: {collection}/{document_id}")

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int = 25,
        offset: int = 0,
        owner: Optional[str] = None,
    ) -> DocumentPage:
        matching = [
            doc for doc in self._collection(collection).values()
            if matches_all(doc, filters) and (owner is None or can_read(doc, owner))
        ]
        page = matching[offset:offset + limit]
        return DocumentPage(
            documents=[copy.deepcopy(doc) for doc in page],
            total=len(matching),
        )

    async def get(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> Document:
        doc = self._find(collection, document_id)
        if owner is not None and not can_read(doc, owner):
            raise PermissionDeniedError(f"Read not allowed: {collection}/{document_id}")
        return copy.deepcopy(doc)

    async def create(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        permissions: Optional[list[str]] = None,
    ) -> Document:
        docs = self._collection(collection)
        if document_id in docs:
            raise DuplicateError(f"Document already exists: {collection}/{document_id}")

        now = datetime.utcnow().isoformat()
        doc = {k: v for k, v in copy.deepcopy(fields).items() if k not in META_KEYS}
        doc[ID_KEY] = document_id
        doc[PERMISSIONS_KEY] = list(permissions or [])
        doc[CREATED_AT_KEY] = now
        doc[UPDATED_AT_KEY] = now
        docs[document_id] = doc
        return copy.deepcopy(doc)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        owner: Optional[str] = None,
    ) -> Document:
        doc = self._find(collection, document_id)
        if owner is not None and not can_write(doc, owner):
            raise PermissionDeniedError(f"Write not allowed: {collection}/{document_id}")

        for key, value in copy.deepcopy(fields).items():
            if key not in META_KEYS:
                doc[key] = value
        doc[UPDATED_AT_KEY] = datetime.utcnow().isoformat()
        return copy.deepcopy(doc)

    async def delete(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> None:
        doc = self._find(collection, document_id)
        if owner is not None and not can_write(doc, owner):
            raise PermissionDeniedError(f"Write not allowed: {collection}/{document_id}")
        del self._collection(collection)[document_id]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
