"""Settlement engine: applies payments and credits against invoices and bills."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from settlement_ledger.core.exceptions import (
    InsufficientCreditError,
    InvalidAmountError,
    InvalidSourceStateError,
    InvalidTargetStateError,
    OverApplicationError,
)
from settlement_ledger.core.money import ZERO, to_money
from settlement_ledger.schemas.document import (
    DocumentStatus,
    DocumentType,
    SettleableDocument,
    SettlementRef,
    SourceType,
)
from settlement_ledger.schemas.settlement import (
    AppliedResult,
    ApplyCreditsResult,
    CreditApplication,
    RecordPaymentResult,
    SettlementTarget,
)
from settlement_ledger.schemas.source import AppliedRef, SettlementSource, SourceStatus
from settlement_ledger.services.balance_calculator import (
    applied_total,
    recalculate_document,
    recalculate_source,
)
from settlement_ledger.services.ledger_base import LedgerService, LedgerSession

logger = logging.getLogger(__name__)

NUMBER_PREFIXES = {
    SourceType.PAYMENT_RECEIVED: "PR",
    SourceType.PAYMENT_MADE: "PM",
    SourceType.CREDIT_NOTE: "CN",
    SourceType.VENDOR_CREDIT: "VC",
}


@dataclass
class Allocation:
    """One requested application of a source against a document."""

    source_type: SourceType
    source_id: str
    document_id: str
    amount: Decimal

    @property
    def document_type(self) -> DocumentType:
        return self.source_type.target_type


def next_source_number(session: LedgerSession, source_type: SourceType) -> str:
    """Next sequential number for a source type, e.g. ``PR-000007``."""
    prefix = NUMBER_PREFIXES[source_type]
    highest = 0
    for source in session.sources(source_type):
        head, _, tail = source.number.partition("-")
        if head == prefix and tail.isdigit():
            highest = max(highest, int(tail))
    return f"{prefix}-{highest + 1:06d}"


class SettlementService(LedgerService):
    """Service applying settlement sources to settleable documents.

    Every batch is validated as a whole against freshly loaded data inside
    the collection locks; any violation rejects the batch before anything
    is written.
    """

    def apply_settlement(
        self,
        source_type: SourceType,
        source_id: str,
        targets: list[SettlementTarget],
        applied_date: date | None = None,
    ) -> AppliedResult:
        """Apply one source against one or more documents.

        Args:
            source_type: Type of the settlement source.
            source_id: The source to draw from.
            targets: Documents and the amount to apply to each.
            applied_date: Date recorded on the settlement refs (today if omitted).

        Returns:
            The updated source and documents.

        Raises:
            NotFoundError: If the source or a document does not exist.
            InsufficientCreditError: If the source cannot cover the batch.
            OverApplicationError: If a document would be settled beyond its balance.
            InvalidTargetStateError: If a document is void or already paid.
        """
        if not targets:
            raise InvalidAmountError("At least one target is required")

        allocations = [
            Allocation(source_type, source_id, target.document_id, target.amount)
            for target in targets
        ]
        document_type = source_type.target_type
        with self.unit_of_work(source_type.collection, document_type.collection) as session:
            total = self.apply_allocations(session, allocations, applied_date)
            source = session.source(source_type, source_id)
            document_ids = list(dict.fromkeys(a.document_id for a in allocations))
            documents = [session.document(document_type, doc_id) for doc_id in document_ids]

        return AppliedResult(source=source, documents=documents, total_applied=total)

    def apply_credits(
        self,
        document_type: DocumentType,
        document_id: str,
        credits: list[CreditApplication],
        applied_date: date | None = None,
    ) -> ApplyCreditsResult:
        """Apply several existing sources (credit notes, excess payments) to one document.

        All-or-nothing: if any credit is rejected none is applied.
        """
        if not credits:
            raise InvalidAmountError("At least one credit is required")

        for credit in credits:
            if credit.source_type.target_type is not document_type:
                raise InvalidTargetStateError(
                    f"A {credit.source_type.value} cannot be applied to a {document_type.value}"
                )

        allocations = [
            Allocation(credit.source_type, credit.source_id, document_id, credit.amount_to_apply)
            for credit in credits
        ]
        collections = {document_type.collection} | {c.source_type.collection for c in credits}
        with self.unit_of_work(*collections) as session:
            total = self.apply_allocations(session, allocations, applied_date)
            document = session.document(document_type, document_id)
            keys = dict.fromkeys((c.source_type, c.source_id) for c in credits)
            sources = [session.source(st, sid) for st, sid in keys]

        return ApplyCreditsResult(document=document, total_applied=total, updated_sources=sources)

    def record_payment(
        self,
        document_type: DocumentType,
        document_id: str,
        amount: Decimal,
        payment_date: date | None = None,
        mode: str | None = None,
        reference: str | None = None,
        number: str | None = None,
    ) -> RecordPaymentResult:
        """Record a new payment against a document and apply it immediately.

        Only the owed portion settles the document; any excess stays on the
        new payment as ``amount_remaining`` and is available as credit later.
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise InvalidAmountError("Payment amount must be greater than 0")

        source_type = SourceType.payment_for(document_type)
        payment_date = payment_date or date.today()

        with self.unit_of_work(source_type.collection, document_type.collection) as session:
            document = session.document(document_type, document_id)
            self._check_target_state(document)

            amount_applied = min(amount, document.balance_due)
            if amount_applied <= ZERO:
                raise OverApplicationError(
                    f"{document_type.value.capitalize()} {document.number} has no balance due"
                )
            unused_amount = amount - amount_applied

            source = SettlementSource(
                source_type=source_type,
                number=number or next_source_number(session, source_type),
                party_id=document.party_id,
                transaction_date=payment_date,
                mode=mode,
                reference=reference,
                total_amount=amount,
                amount_remaining=amount,
            )
            self.audit.log_created(source, "Payment", amount)
            session.add(source_type.collection, source)

            self.apply_allocations(
                session,
                [Allocation(source_type, source.id, document_id, amount_applied)],
                payment_date,
            )

        if unused_amount > ZERO:
            logger.info(
                "Payment %s exceeds %s %s balance; %s kept as unused credit",
                source.number,
                document_type.value,
                document.number,
                unused_amount,
            )
        return RecordPaymentResult(
            document=document,
            settlement_source=source,
            amount_applied=amount_applied,
            unused_amount=unused_amount,
        )

    def apply_allocations(
        self,
        session: LedgerSession,
        allocations: list[Allocation],
        applied_date: date | None = None,
    ) -> Decimal:
        """Validate and apply a batch of allocations inside ``session``.

        Returns the total amount applied.
        """
        applied_date = applied_date or date.today()

        per_source: dict[tuple[SourceType, str], Decimal] = {}
        per_document: dict[tuple[DocumentType, str], Decimal] = {}
        for allocation in allocations:
            try:
                allocation.amount = to_money(allocation.amount)
            except ValueError:
                raise InvalidAmountError(f"Invalid amount {allocation.amount!r}") from None
            if allocation.amount <= ZERO:
                raise InvalidAmountError("Amount to apply must be greater than 0")

            source = session.source(allocation.source_type, allocation.source_id)
            document = session.document(allocation.document_type, allocation.document_id)
            self._check_source_state(source)
            self._check_pair(source, document)

            source_key = (allocation.source_type, allocation.source_id)
            document_key = (allocation.document_type, allocation.document_id)
            per_source[source_key] = per_source.get(source_key, ZERO) + allocation.amount
            per_document[document_key] = per_document.get(document_key, ZERO) + allocation.amount

        for (document_type, document_id), requested in per_document.items():
            document = session.document(document_type, document_id)
            self._check_target_state(document)
            if requested > document.balance_due:
                raise OverApplicationError(
                    f"Amount {requested} exceeds balance due {document.balance_due} "
                    f"on {document_type.value} {document.number}"
                )

        for (source_type, source_id), requested in per_source.items():
            source = session.source(source_type, source_id)
            available = to_money(source.total_amount) - applied_total(source)
            if requested > available:
                raise InsufficientCreditError(
                    f"Amount {requested} exceeds available credit {available} "
                    f"on {source_type.value} {source.number}"
                )

        total = ZERO
        touched_documents: dict[tuple[DocumentType, str], SettleableDocument] = {}
        touched_sources: dict[tuple[SourceType, str], SettlementSource] = {}
        for allocation in allocations:
            source = session.source(allocation.source_type, allocation.source_id)
            document = session.document(allocation.document_type, allocation.document_id)

            document.settlements.append(
                SettlementRef(
                    source_id=source.id,
                    source_type=source.source_type,
                    source_number=source.number,
                    amount_applied=allocation.amount,
                    applied_date=applied_date,
                )
            )
            source.applied_to.append(
                AppliedRef(
                    document_id=document.id,
                    document_type=document.document_type,
                    document_number=document.number,
                    amount_applied=allocation.amount,
                    applied_date=applied_date,
                )
            )
            self.audit.log_settlement(document, source, allocation.amount)
            touched_documents[(allocation.document_type, document.id)] = document
            touched_sources[(allocation.source_type, source.id)] = source
            total += allocation.amount

        for document in touched_documents.values():
            old_status = document.status
            recalculate_document(document)
            self.audit.log_status_change(document, old_status.value, document.status.value)
            session.mark_dirty(document.document_type.collection)
        for source in touched_sources.values():
            recalculate_source(source)
            session.mark_dirty(source.source_type.collection)

        self.schedule_sync(
            doc.id
            for doc in touched_documents.values()
            if doc.document_type is DocumentType.INVOICE
        )
        return total

    @staticmethod
    def _check_target_state(document: SettleableDocument) -> None:
        if document.status == DocumentStatus.VOID:
            raise InvalidTargetStateError(
                f"{document.document_type.value.capitalize()} {document.number} is void"
            )
        if document.status == DocumentStatus.PAID:
            raise InvalidTargetStateError(
                f"{document.document_type.value.capitalize()} {document.number} is already paid"
            )

    @staticmethod
    def _check_source_state(source: SettlementSource) -> None:
        if source.status == SourceStatus.VOID:
            raise InvalidSourceStateError(
                f"{source.source_type.value} {source.number} is void"
            )
        if source.status == SourceStatus.CLOSED and not source.closed_by_exhaustion:
            raise InvalidSourceStateError(
                f"{source.source_type.value} {source.number} is closed"
            )

    @staticmethod
    def _check_pair(source: SettlementSource, document: SettleableDocument) -> None:
        if source.source_type.target_type is not document.document_type:
            raise InvalidTargetStateError(
                f"A {source.source_type.value} cannot settle a {document.document_type.value}"
            )
        if source.party_id and document.party_id and source.party_id != document.party_id:
            raise InvalidTargetStateError(
                f"{source.source_type.value} {source.number} belongs to another party"
            )
