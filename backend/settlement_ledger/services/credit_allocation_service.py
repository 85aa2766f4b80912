"""Lists the credits available to a document and suggests how to use them."""

from datetime import date

from settlement_ledger.core.money import ZERO, money_sum
from settlement_ledger.schemas.document import DocumentStatus, DocumentType, SourceType
from settlement_ledger.schemas.settlement import AvailableCredit, CreditSuggestion, SuggestedCredit
from settlement_ledger.schemas.source import SettlementSource, SourceStatus
from settlement_ledger.services.ledger_base import LedgerService


def _is_available(source: SettlementSource) -> bool:
    if source.status == SourceStatus.VOID or source.amount_remaining <= ZERO:
        return False
    return source.status == SourceStatus.OPEN or source.closed_by_exhaustion


def _oldest_first(source: SettlementSource) -> tuple[date, object]:
    return (source.transaction_date or date.min, source.created_at)


class CreditAllocationService(LedgerService):
    """Read-only helper behind the "apply credits" flow.

    Credit notes (or vendor credits) are offered before unused payments,
    each group oldest first.
    """

    def list_available_credits(
        self, document_type: DocumentType, party_id: str | None = None
    ) -> list[AvailableCredit]:
        ordered_types = [SourceType.credit_for(document_type), SourceType.payment_for(document_type)]
        credits: list[AvailableCredit] = []
        with self.unit_of_work() as session:
            for source_type in ordered_types:
                sources = [
                    s
                    for s in session.sources(source_type)
                    if _is_available(s)
                    and (party_id is None or s.party_id in (None, party_id))
                ]
                for source in sorted(sources, key=_oldest_first):
                    credits.append(
                        AvailableCredit(
                            source_id=source.id,
                            source_type=source.source_type,
                            number=source.number,
                            transaction_date=source.transaction_date,
                            total_amount=source.total_amount,
                            amount_remaining=source.amount_remaining,
                        )
                    )
        return credits

    def suggest_allocation(
        self, document_type: DocumentType, document_id: str
    ) -> CreditSuggestion:
        """Fill the document's balance from the available credits in order.

        Raises:
            NotFoundError: If the document does not exist.
        """
        with self.unit_of_work() as session:
            document = session.document(document_type, document_id)

        remaining = ZERO if document.status == DocumentStatus.VOID else document.balance_due
        suggestion = CreditSuggestion(document_id=document.id, balance_due=document.balance_due)
        for credit in self.list_available_credits(document_type, document.party_id):
            if remaining <= ZERO:
                break
            amount = min(credit.amount_remaining, remaining)
            suggestion.credits.append(
                SuggestedCredit(
                    source_id=credit.source_id,
                    source_type=credit.source_type,
                    amount_to_apply=amount,
                )
            )
            remaining -= amount
        suggestion.total_suggested = money_sum(c.amount_to_apply for c in suggestion.credits)
        return suggestion
