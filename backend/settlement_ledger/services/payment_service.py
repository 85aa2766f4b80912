"""Payment service: edit, delete and void settlement sources."""

import logging
from datetime import date
from decimal import Decimal

from settlement_ledger.core.exceptions import InvalidAmountError, InvalidSourceStateError
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.core.money import ZERO, to_money
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import SettleableDocument, SourceType
from settlement_ledger.schemas.settlement import AppliedResult, SettlementTarget
from settlement_ledger.schemas.source import SettlementSource, SourceStatus
from settlement_ledger.services.audit_service import AuditService
from settlement_ledger.services.balance_calculator import recalculate_source
from settlement_ledger.services.ledger_base import LedgerService
from settlement_ledger.services.reversal_service import ReversalService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService
from settlement_ledger.services.settlement_service import Allocation, SettlementService

logger = logging.getLogger(__name__)


class PaymentService(LedgerService):
    """Lifecycle operations on payments, credit notes and vendor credits.

    Every edit fully reverses the old applications before the new state is
    applied, inside one transaction; if the new state is rejected the old
    one stays in place.
    """

    def __init__(
        self,
        store: LedgerStore,
        locks: CollectionLocks | None = None,
        audit: AuditService | None = None,
        synchronizer: SalesOrderSyncService | None = None,
    ):
        super().__init__(store, locks=locks, audit=audit, synchronizer=synchronizer)
        shared = {"locks": self.locks, "audit": self.audit, "synchronizer": self.synchronizer}
        self.reversals = ReversalService(self.store, **shared)
        self.settlements = SettlementService(self.store, **shared)

    def update_payment(
        self,
        source_type: SourceType,
        source_id: str,
        total_amount: Decimal | None = None,
        targets: list[SettlementTarget] | None = None,
        transaction_date: date | None = None,
        mode: str | None = None,
        reference: str | None = None,
    ) -> AppliedResult:
        """Replace a source's amount and/or application set.

        When ``targets`` is omitted the previous applications are re-applied
        unchanged.

        Raises:
            NotFoundError: If the source or a target does not exist.
            InvalidSourceStateError: If the source is void.
            InvalidAmountError: If the new total is not positive.
        """
        document_type = source_type.target_type
        with self.critical_section(source_type.collection, document_type.collection):
            with self.unit_of_work() as session:
                current = session.source(source_type, source_id)
                if current.status == SourceStatus.VOID:
                    raise InvalidSourceStateError(
                        f"{source_type.value} {current.number} is void and cannot be edited"
                    )
                previous_targets = [
                    Allocation(source_type, source_id, ref.document_id, ref.amount_applied)
                    for ref in current.applied_to
                ]

            self.reversals.reverse_source(source_type, source_id)

            with self.unit_of_work() as session:
                source = session.source(source_type, source_id)
                if total_amount is not None:
                    new_total = to_money(total_amount)
                    if new_total <= ZERO:
                        raise InvalidAmountError("Payment amount must be greater than 0")
                    source.total_amount = new_total
                if transaction_date is not None:
                    source.transaction_date = transaction_date
                if mode is not None:
                    source.mode = mode
                if reference is not None:
                    source.reference = reference
                recalculate_source(source)
                self.audit.log(source, "updated", f"{source.number} updated")
                session.mark_dirty(source_type.collection)

            if targets is None:
                allocations = previous_targets
            else:
                allocations = [
                    Allocation(source_type, source_id, t.document_id, t.amount) for t in targets
                ]

            total_applied = ZERO
            with self.unit_of_work() as session:
                if allocations:
                    total_applied = self.settlements.apply_allocations(
                        session, allocations, source.transaction_date
                    )
                source = session.source(source_type, source_id)
                document_ids = list(dict.fromkeys(a.document_id for a in allocations))
                documents: list[SettleableDocument] = [
                    session.document(document_type, doc_id) for doc_id in document_ids
                ]

        logger.info(
            "Updated %s %s: %s applied to %d document(s)",
            source_type.value,
            source.number,
            total_applied,
            len(documents),
        )
        return AppliedResult(source=source, documents=documents, total_applied=total_applied)

    def delete_payment(self, source_type: SourceType, source_id: str) -> bool:
        """Reverse every application of a source, then delete it.

        Returns ``False`` when the source does not exist, so retries are safe.
        """
        document_type = source_type.target_type
        with self.critical_section(source_type.collection, document_type.collection):
            source = self.reversals.reverse_source(source_type, source_id)
            if source is None:
                return False
            with self.unit_of_work() as session:
                session.remove(source_type.collection, source_id)

        logger.info("Deleted %s %s", source_type.value, source.number)
        return True

    def void_payment(self, source_type: SourceType, source_id: str) -> SettlementSource:
        """Reverse every application of a source, then mark it void.

        Voiding a void source is a no-op.

        Raises:
            NotFoundError: If the source does not exist.
        """
        document_type = source_type.target_type
        with self.critical_section(source_type.collection, document_type.collection):
            with self.unit_of_work() as session:
                source = session.source(source_type, source_id)
                if source.status == SourceStatus.VOID:
                    return source

            self.reversals.reverse_source(source_type, source_id)

            with self.unit_of_work() as session:
                source = session.source(source_type, source_id)
                old_status = source.status
                source.status = SourceStatus.VOID
                source.closed_by_exhaustion = False
                self.audit.log_status_change(source, old_status.value, source.status.value)
                session.mark_dirty(source_type.collection)

        logger.info("Voided %s %s", source_type.value, source.number)
        return source

    def reverse_application(
        self, source_type: SourceType, source_id: str, document_id: str
    ) -> SettleableDocument:
        """Remove one source's applications from one document."""
        return self.reversals.reverse_settlement(
            source_type.target_type, document_id, source_type, source_id
        )
