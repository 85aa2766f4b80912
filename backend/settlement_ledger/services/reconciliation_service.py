"""Ledger integrity checks.

Re-derives every cached figure from the settlement refs and reports where the
stored state disagrees. Nothing is repaired automatically.
"""

import logging
from decimal import Decimal

from settlement_ledger.core.money import ZERO, money_sum, to_money
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.schemas.document import DocumentType, SettleableDocument, SourceType
from settlement_ledger.schemas.reconciliation import IntegrityReport, LedgerIssue
from settlement_ledger.schemas.source import SettlementSource
from settlement_ledger.services.balance_calculator import applied_total, compute_balance
from settlement_ledger.services.ledger_base import LedgerService, LedgerSession

logger = logging.getLogger(__name__)


class ReconciliationService(LedgerService):
    """Verifies the settlement ledger invariants across all collections."""

    def verify(self) -> IntegrityReport:
        report = IntegrityReport()
        with self.unit_of_work(*Collection) as session:
            for document_type in DocumentType:
                for document in session.documents(document_type):
                    report.documents_checked += 1
                    self._check_document(report, document)
                    self._check_orphans(report, session, document)
            for source_type in SourceType:
                for source in session.sources(source_type):
                    report.sources_checked += 1
                    self._check_source(report, source)
                    self._check_mirror(report, session, source)

        if report.issues:
            logger.warning(
                "Ledger integrity check found %d issue(s) across %d documents and %d sources",
                len(report.issues),
                report.documents_checked,
                report.sources_checked,
            )
        else:
            logger.info(
                "Ledger integrity check passed (%d documents, %d sources)",
                report.documents_checked,
                report.sources_checked,
            )
        return report

    @staticmethod
    def _issue(report: IntegrityReport, item, check: str, detail: str) -> None:
        collection = (
            item.document_type.collection
            if isinstance(item, SettleableDocument)
            else item.source_type.collection
        )
        report.issues.append(
            LedgerIssue(collection=collection.value, document_id=item.id, check=check, detail=detail)
        )

    def _check_document(self, report: IntegrityReport, document: SettleableDocument) -> None:
        settled = money_sum(ref.amount_applied for ref in document.settlements)
        if to_money(document.amount_paid) != settled:
            self._issue(
                report,
                document,
                "amount_paid",
                f"amount_paid {document.amount_paid} != sum of settlements {settled}",
            )
        if settled > to_money(document.total):
            self._issue(
                report, document, "over_settled", f"settled {settled} exceeds total {document.total}"
            )

        expected_balance, expected_status = compute_balance(
            document.total, settled, document.status, document.unsettled_status
        )
        if to_money(document.balance_due) != expected_balance:
            self._issue(
                report,
                document,
                "balance_due",
                f"balance_due {document.balance_due} != expected {expected_balance}",
            )
        if document.status != expected_status:
            self._issue(
                report,
                document,
                "status",
                f"status {document.status.value} != expected {expected_status.value}",
            )
        if any(ref.amount_applied <= ZERO for ref in document.settlements):
            self._issue(report, document, "non_positive_settlement", "settlement amount <= 0")

    def _check_source(self, report: IntegrityReport, source: SettlementSource) -> None:
        applied = applied_total(source)
        expected_remaining: Decimal = to_money(source.total_amount) - applied
        if to_money(source.amount_remaining) != expected_remaining:
            self._issue(
                report,
                source,
                "amount_remaining",
                f"amount_remaining {source.amount_remaining} != expected {expected_remaining}",
            )
        if expected_remaining < ZERO:
            self._issue(
                report,
                source,
                "over_applied",
                f"applied {applied} exceeds total {source.total_amount}",
            )
        if any(ref.amount_applied <= ZERO for ref in source.applied_to):
            self._issue(report, source, "non_positive_settlement", "applied amount <= 0")

    def _check_mirror(
        self, report: IntegrityReport, session: LedgerSession, source: SettlementSource
    ) -> None:
        """Every applied ref must be mirrored by equal settlement refs, and back."""
        document_type = source.source_type.target_type
        on_source: dict[str, Decimal] = {}
        for ref in source.applied_to:
            on_source[ref.document_id] = on_source.get(ref.document_id, ZERO) + ref.amount_applied

        on_documents: dict[str, Decimal] = {}
        for document in session.documents(document_type):
            for ref in document.settlements:
                if ref.source_id == source.id and ref.source_type is source.source_type:
                    on_documents[document.id] = (
                        on_documents.get(document.id, ZERO) + ref.amount_applied
                    )

        for document_id in sorted(set(on_source) | set(on_documents)):
            source_side = on_source.get(document_id, ZERO)
            document_side = on_documents.get(document_id, ZERO)
            if session.find_document(document_type, document_id) is None:
                self._issue(
                    report,
                    source,
                    "dangling_reference",
                    f"applied to missing {document_type.value} {document_id}",
                )
            elif source_side != document_side:
                self._issue(
                    report,
                    source,
                    "mirror",
                    f"{document_type.value} {document_id}: source records {source_side}, "
                    f"document records {document_side}",
                )

    def _check_orphans(
        self, report: IntegrityReport, session: LedgerSession, document: SettleableDocument
    ) -> None:
        for ref in document.settlements:
            if session.find_source(ref.source_type, ref.source_id) is None:
                self._issue(
                    report,
                    document,
                    "dangling_reference",
                    f"settled by missing {ref.source_type.value} {ref.source_id}",
                )
