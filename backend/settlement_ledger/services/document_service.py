"""Document service: creation, deletion and voiding of ledger documents."""

import logging
from datetime import date

from settlement_ledger.core.exceptions import InvalidAmountError, InvalidTargetStateError
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.core.money import ZERO
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import (
    DocumentCreate,
    DocumentStatus,
    DocumentType,
    SettleableDocument,
    SourceType,
)
from settlement_ledger.schemas.sales_order import SalesOrder, SalesOrderCreate
from settlement_ledger.schemas.source import SettlementSource, SourceCreate
from settlement_ledger.services.audit_service import AuditService
from settlement_ledger.services.balance_calculator import recalculate_document
from settlement_ledger.services.ledger_base import LedgerService, source_types_for
from settlement_ledger.services.reversal_service import ReversalService
from settlement_ledger.services.sales_order_sync_service import (
    SALES_ORDER_ORIGIN,
    SalesOrderSyncService,
)
from settlement_ledger.services.settlement_service import next_source_number

logger = logging.getLogger(__name__)


class DocumentService(LedgerService):
    """Service for settleable documents, settlement sources and sales orders."""

    def __init__(
        self,
        store: LedgerStore,
        locks: CollectionLocks | None = None,
        audit: AuditService | None = None,
        synchronizer: SalesOrderSyncService | None = None,
    ):
        super().__init__(store, locks=locks, audit=audit, synchronizer=synchronizer)
        self.reversals = ReversalService(
            self.store, locks=self.locks, audit=self.audit, synchronizer=self.synchronizer
        )

    def create_document(
        self, document_type: DocumentType, data: DocumentCreate
    ) -> SettleableDocument:
        """Create an invoice or bill with nothing settled yet."""
        if data.total < ZERO:
            raise InvalidAmountError("Document total cannot be negative")
        if data.status not in (DocumentStatus.DRAFT, DocumentStatus.OPEN, DocumentStatus.PENDING):
            raise InvalidTargetStateError(
                f"A new {document_type.value} cannot start as {data.status.value}"
            )

        linked_order = (
            document_type is DocumentType.INVOICE
            and data.origin_type == SALES_ORDER_ORIGIN
            and bool(data.origin_id)
        )
        collections = [document_type.collection]
        if linked_order:
            collections.append(Collection.SALES_ORDERS)

        with self.critical_section(*collections):
            with self.unit_of_work() as session:
                if linked_order:
                    session.get(Collection.SALES_ORDERS, data.origin_id)
                document = SettleableDocument(
                    document_type=document_type,
                    number=data.number,
                    party_id=data.party_id,
                    document_date=data.document_date or date.today(),
                    total=data.total,
                    status=data.status,
                    unsettled_status=data.status,
                    origin_type=data.origin_type,
                    origin_id=data.origin_id,
                )
                recalculate_document(document)
                self.audit.log_created(document, document_type.value.capitalize(), document.total)
                session.add(document_type.collection, document)

            if linked_order and self.synchronizer is not None:
                self.synchronizer.attach_invoice(str(data.origin_id), document.id)
        return document

    def get_document(self, document_type: DocumentType, document_id: str) -> SettleableDocument:
        with self.unit_of_work() as session:
            return session.document(document_type, document_id)

    def list_documents(
        self, document_type: DocumentType, party_id: str | None = None
    ) -> list[SettleableDocument]:
        with self.unit_of_work() as session:
            documents = session.documents(document_type)
        if party_id is not None:
            documents = [d for d in documents if d.party_id == party_id]
        return documents

    def create_source(self, source_type: SourceType, data: SourceCreate) -> SettlementSource:
        """Create an unapplied settlement source (credit note, vendor credit, advance)."""
        if data.total_amount <= ZERO:
            raise InvalidAmountError("Source amount must be greater than 0")

        with self.unit_of_work(source_type.collection) as session:
            source = SettlementSource(
                source_type=source_type,
                number=data.number or next_source_number(session, source_type),
                party_id=data.party_id,
                transaction_date=data.transaction_date or date.today(),
                mode=data.mode,
                reference=data.reference,
                total_amount=data.total_amount,
                amount_remaining=data.total_amount,
            )
            label = source_type.value.replace("_", " ").capitalize()
            self.audit.log_created(source, label, source.total_amount)
            session.add(source_type.collection, source)
        return source

    def get_source(self, source_type: SourceType, source_id: str) -> SettlementSource:
        with self.unit_of_work() as session:
            return session.source(source_type, source_id)

    def list_sources(
        self, source_type: SourceType, party_id: str | None = None
    ) -> list[SettlementSource]:
        with self.unit_of_work() as session:
            sources = session.sources(source_type)
        if party_id is not None:
            sources = [s for s in sources if s.party_id == party_id]
        return sources

    def create_sales_order(self, data: SalesOrderCreate) -> SalesOrder:
        with self.unit_of_work(Collection.SALES_ORDERS) as session:
            order = SalesOrder(number=data.number, party_id=data.party_id, total=data.total)
            self.audit.log_created(order, "Sales order", order.total)
            session.add(Collection.SALES_ORDERS, order)
        return order

    def get_sales_order(self, sales_order_id: str) -> SalesOrder:
        with self.unit_of_work() as session:
            return session.get(Collection.SALES_ORDERS, sales_order_id)

    def delete_document(self, document_type: DocumentType, document_id: str) -> bool:
        """Reverse every settlement of a document, delete it and detach it
        from its owning sales order.

        Returns ``False`` when the document does not exist.
        """
        collections = [
            document_type.collection,
            *(st.collection for st in source_types_for(document_type)),
        ]
        if document_type is DocumentType.INVOICE:
            collections.append(Collection.SALES_ORDERS)

        with self.critical_section(*collections):
            with self.unit_of_work() as session:
                document = session.find_document(document_type, document_id)
            if document is None:
                return False

            self.reversals.reverse_all_settlements(document_type, document_id)
            with self.unit_of_work() as session:
                session.remove(document_type.collection, document_id)

            if document_type is DocumentType.INVOICE and self.synchronizer is not None:
                self.synchronizer.detach_invoice(document_id)

        logger.info("Deleted %s %s", document_type.value, document.number)
        return True

    def void_document(
        self, document_type: DocumentType, document_id: str
    ) -> SettleableDocument:
        """Reverse every settlement of a document and mark it void.

        Raises:
            NotFoundError: If the document does not exist.
        """
        collections = [
            document_type.collection,
            *(st.collection for st in source_types_for(document_type)),
        ]
        with self.critical_section(*collections):
            with self.unit_of_work() as session:
                document = session.document(document_type, document_id)
                if document.status == DocumentStatus.VOID:
                    return document

            self.reversals.reverse_all_settlements(document_type, document_id)

            with self.unit_of_work() as session:
                document = session.document(document_type, document_id)
                old_status = document.status
                document.status = DocumentStatus.VOID
                recalculate_document(document)
                self.audit.log_status_change(document, old_status.value, document.status.value)
                session.mark_dirty(document_type.collection)

            if document_type is DocumentType.INVOICE:
                self.schedule_sync([document_id])

        logger.info("Voided %s %s", document_type.value, document.number)
        return document
