"""Shared plumbing for ledger services.

A ``LedgerSession`` is the in-memory view of the collections one operation
touches: it loads each collection once, hands out typed documents, and writes
back only the collections that were changed. ``LedgerService`` wraps a
session in the collection locks and a store transaction.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from settlement_ledger.core.exceptions import NotFoundError
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import DocumentType, SettleableDocument, SourceType
from settlement_ledger.schemas.sales_order import SalesOrder
from settlement_ledger.schemas.source import SettlementSource
from settlement_ledger.services.audit_service import AuditService

if TYPE_CHECKING:
    from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService

logger = logging.getLogger(__name__)

DOCUMENT_COLLECTIONS = (Collection.INVOICES, Collection.BILLS)
SOURCE_COLLECTIONS = (
    Collection.PAYMENTS_RECEIVED,
    Collection.PAYMENTS_MADE,
    Collection.CREDIT_NOTES,
    Collection.VENDOR_CREDITS,
)

# Documents are written before sources, sources before derived caches
_WRITE_ORDER = {
    collection: position
    for position, collection in enumerate(
        (*DOCUMENT_COLLECTIONS, *SOURCE_COLLECTIONS, Collection.SALES_ORDERS)
    )
}


def model_for(collection: Collection) -> type[BaseModel]:
    if collection in DOCUMENT_COLLECTIONS:
        return SettleableDocument
    if collection in SOURCE_COLLECTIONS:
        return SettlementSource
    return SalesOrder


def source_types_for(document_type: DocumentType) -> list[SourceType]:
    """Source types able to settle ``document_type``."""
    return [st for st in SourceType if st.target_type is document_type]


class LedgerSession:
    """Typed, lazily loaded view over ledger collections."""

    def __init__(self, store: LedgerStore):
        self.store = store
        self._loaded: dict[Collection, dict[str, Any]] = {}
        self._dirty: set[Collection] = set()

    def _collection(self, collection: Collection) -> dict[str, Any]:
        if collection not in self._loaded:
            model = model_for(collection)
            self._loaded[collection] = {
                str(raw["id"]): model.model_validate(raw) for raw in self.store.load(collection)
            }
        return self._loaded[collection]

    def all(self, collection: Collection) -> list[Any]:
        return list(self._collection(collection).values())

    def find(self, collection: Collection, item_id: str) -> Any | None:
        return self._collection(collection).get(item_id)

    def get(self, collection: Collection, item_id: str) -> Any:
        item = self.find(collection, item_id)
        if item is None:
            raise NotFoundError(collection.value, item_id)
        return item

    def documents(self, document_type: DocumentType) -> list[SettleableDocument]:
        return self.all(document_type.collection)

    def document(self, document_type: DocumentType, document_id: str) -> SettleableDocument:
        return self.get(document_type.collection, document_id)

    def find_document(
        self, document_type: DocumentType, document_id: str
    ) -> SettleableDocument | None:
        return self.find(document_type.collection, document_id)

    def sources(self, source_type: SourceType) -> list[SettlementSource]:
        return self.all(source_type.collection)

    def source(self, source_type: SourceType, source_id: str) -> SettlementSource:
        return self.get(source_type.collection, source_id)

    def find_source(self, source_type: SourceType, source_id: str) -> SettlementSource | None:
        return self.find(source_type.collection, source_id)

    def add(self, collection: Collection, item: Any) -> None:
        self._collection(collection)[str(item.id)] = item
        self.mark_dirty(collection)

    def remove(self, collection: Collection, item_id: str) -> bool:
        removed = self._collection(collection).pop(item_id, None)
        if removed is not None:
            self.mark_dirty(collection)
        return removed is not None

    def mark_dirty(self, *collections: Collection) -> None:
        self._dirty.update(collections)

    def flush(self) -> None:
        """Save every changed collection, documents first."""
        for collection in sorted(self._dirty, key=lambda c: _WRITE_ORDER[c]):
            self.store.save(
                collection,
                [item.model_dump(mode="json") for item in self._loaded[collection].values()],
            )
        self._dirty.clear()


class LedgerService:
    """Base class wiring a store, collection locks, the audit trail and the
    sales-order synchronizer together."""

    def __init__(
        self,
        store: LedgerStore,
        locks: CollectionLocks | None = None,
        audit: AuditService | None = None,
        synchronizer: "SalesOrderSyncService | None" = None,
    ):
        self.store = store
        self.locks = locks or CollectionLocks()
        self.audit = audit or AuditService()
        self.synchronizer = synchronizer

    @contextmanager
    def critical_section(self, *collections: Collection) -> Iterator[None]:
        """Hold the collection locks and one store transaction."""
        with self.locks.hold(*collections), self.store.transaction():
            yield

    @contextmanager
    def unit_of_work(self, *collections: Collection) -> Iterator[LedgerSession]:
        """Critical section plus a session flushed on clean exit."""
        with self.critical_section(*collections):
            session = LedgerSession(self.store)
            yield session
            session.flush()

    def schedule_sync(self, invoice_ids: Iterable[str]) -> None:
        """Resync owning sales orders once the current transaction commits."""
        if self.synchronizer is None:
            return
        for invoice_id in sorted(set(invoice_ids)):
            self.store.after_commit(
                partial(self.synchronizer.sync_sales_order_status, invoice_id)
            )
