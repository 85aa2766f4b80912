"""Reversal engine: undoes recorded settlements on both sides."""

import logging
from decimal import Decimal

from settlement_ledger.core.exceptions import ReversalMismatchError
from settlement_ledger.core.money import ZERO, money_sum
from settlement_ledger.schemas.document import DocumentType, SettleableDocument, SourceType
from settlement_ledger.schemas.source import SettlementSource
from settlement_ledger.services.balance_calculator import recalculate_document, recalculate_source
from settlement_ledger.services.ledger_base import LedgerService, LedgerSession, source_types_for

logger = logging.getLogger(__name__)


class ReversalService(LedgerService):
    """Service removing settlements from documents and their sources.

    Reversal is idempotent: reversing a settlement that is not recorded is a
    no-op. When the two sides of a settlement disagree the operation is
    aborted with ``ReversalMismatchError`` and nothing is written.
    """

    def reverse_settlement(
        self,
        document_type: DocumentType,
        document_id: str,
        source_type: SourceType,
        source_id: str,
    ) -> SettleableDocument:
        """Reverse every application of one source on one document.

        Raises:
            NotFoundError: If the document does not exist.
            ReversalMismatchError: If the source-side mirror does not match.
        """
        with self.unit_of_work(document_type.collection, source_type.collection) as session:
            document = session.document(document_type, document_id)
            source = session.find_source(source_type, source_id)
            self.unlink(session, document_type, document_id, source_type, source_id, document, source)
        return document

    def reverse_all_settlements(
        self, document_type: DocumentType, document_id: str
    ) -> SettleableDocument:
        """Reverse every settlement recorded against a document.

        Used before a document is deleted or voided.
        """
        source_types = source_types_for(document_type)
        collections = [document_type.collection, *(st.collection for st in source_types)]
        with self.unit_of_work(*collections) as session:
            document = session.document(document_type, document_id)

            pairs: dict[tuple[SourceType, str], None] = {}
            for ref in document.settlements:
                pairs[(ref.source_type, ref.source_id)] = None
            # Sources still pointing at the document without a matching ref
            for source_type in source_types:
                for source in session.sources(source_type):
                    if any(
                        r.document_id == document_id and r.document_type is document_type
                        for r in source.applied_to
                    ):
                        pairs[(source_type, source.id)] = None

            for source_type, source_id in pairs:
                source = session.find_source(source_type, source_id)
                self.unlink(
                    session, document_type, document_id, source_type, source_id, document, source
                )
        return document

    def reverse_source(
        self, source_type: SourceType, source_id: str
    ) -> SettlementSource | None:
        """Reverse every application a source made.

        Returns the source with its full amount restored, or ``None`` when the
        source does not exist (nothing to reverse).
        """
        document_type = source_type.target_type
        with self.unit_of_work(source_type.collection, document_type.collection) as session:
            source = session.find_source(source_type, source_id)
            if source is None:
                return None

            document_ids: dict[str, None] = {}
            for applied in source.applied_to:
                document_ids[applied.document_id] = None
            for document in session.documents(document_type):
                if any(
                    r.source_id == source_id and r.source_type is source_type
                    for r in document.settlements
                ):
                    document_ids[document.id] = None

            for document_id in document_ids:
                document = session.find_document(document_type, document_id)
                self.unlink(
                    session, document_type, document_id, source_type, source_id, document, source
                )
        return source

    def unlink(
        self,
        session: LedgerSession,
        document_type: DocumentType,
        document_id: str,
        source_type: SourceType,
        source_id: str,
        document: SettleableDocument | None,
        source: SettlementSource | None,
    ) -> Decimal:
        """Remove the settlement between one document and one source.

        Returns the amount reversed (zero when there was nothing to reverse).
        """
        document_refs = (
            [
                r
                for r in document.settlements
                if r.source_id == source_id and r.source_type is source_type
            ]
            if document is not None
            else []
        )
        source_refs = (
            [
                r
                for r in source.applied_to
                if r.document_id == document_id and r.document_type is document_type
            ]
            if source is not None
            else []
        )
        if not document_refs and not source_refs:
            return ZERO

        document_total = money_sum(r.amount_applied for r in document_refs)
        source_total = money_sum(r.amount_applied for r in source_refs)
        if document is None or source is None or document_total != source_total:
            logger.error(
                "Settlement cross-links disagree: %s %s records %s from %s %s, "
                "source side records %s (document present: %s, source present: %s)",
                document_type.value,
                document_id,
                document_total,
                source_type.value,
                source_id,
                source_total,
                document is not None,
                source is not None,
            )
            raise ReversalMismatchError(
                f"Settlement between {document_type.value} {document_id} and "
                f"{source_type.value} {source_id} is inconsistent"
            )

        document.settlements = [
            r
            for r in document.settlements
            if not (r.source_id == source_id and r.source_type is source_type)
        ]
        source.applied_to = [
            r
            for r in source.applied_to
            if not (r.document_id == document_id and r.document_type is document_type)
        ]

        old_status = document.status
        recalculate_document(document)
        recalculate_source(source)
        self.audit.log_settlement(document, source, document_total, reversed_=True)
        self.audit.log_status_change(document, old_status.value, document.status.value)
        session.mark_dirty(document_type.collection, source_type.collection)

        logger.info(
            "Reversed %s from %s %s on %s %s",
            document_total,
            source_type.value,
            source.number,
            document_type.value,
            document.number,
        )
        if document_type is DocumentType.INVOICE:
            self.schedule_sync([document_id])
        return document_total
