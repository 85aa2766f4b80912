"""Balance calculation for settleable documents and settlement sources.

Everything here is pure: no I/O, Decimal arithmetic only.
"""

from decimal import Decimal
from typing import Any

from settlement_ledger.core.money import ZERO, money_sum, to_money
from settlement_ledger.schemas.document import DocumentStatus, SettleableDocument
from settlement_ledger.schemas.source import SettlementSource, SourceStatus

_UNSETTLED_STATUSES = frozenset(
    {DocumentStatus.DRAFT, DocumentStatus.OPEN, DocumentStatus.PENDING}
)


def compute_balance(
    total: Any,
    amount_paid: Any,
    prior_status: DocumentStatus = DocumentStatus.OPEN,
    unsettled_status: DocumentStatus | None = None,
) -> tuple[Decimal, DocumentStatus]:
    """Compute ``(balance_due, status)`` for a document.

    A void document keeps its status. When nothing settles the document it
    returns to ``unsettled_status``, the status it was created with. Without
    one, an unsettled prior status (draft, open, pending) is preserved and a
    document that used to be paid or partially paid falls back to open.
    """
    total = to_money(total)
    amount_paid = to_money(amount_paid)
    balance_due = max(ZERO, total - amount_paid)

    if prior_status == DocumentStatus.VOID:
        return balance_due, DocumentStatus.VOID
    if balance_due == ZERO and total > ZERO:
        return balance_due, DocumentStatus.PAID
    if ZERO < amount_paid < total:
        return balance_due, DocumentStatus.PARTIALLY_PAID
    if unsettled_status is not None:
        return balance_due, unsettled_status
    if prior_status in _UNSETTLED_STATUSES:
        return balance_due, prior_status
    return balance_due, DocumentStatus.OPEN


def recalculate_document(document: SettleableDocument) -> SettleableDocument:
    """Re-derive amount_paid, balance_due and status from the settlement refs."""
    if document.unsettled_status is None and document.status in _UNSETTLED_STATUSES:
        document.unsettled_status = document.status
    document.amount_paid = money_sum(ref.amount_applied for ref in document.settlements)
    document.balance_due, document.status = compute_balance(
        document.total, document.amount_paid, document.status, document.unsettled_status
    )
    return document


def applied_total(source: SettlementSource) -> Decimal:
    return money_sum(ref.amount_applied for ref in source.applied_to)


def recalculate_source(source: SettlementSource) -> SettlementSource:
    """Re-derive amount_remaining from the applied refs and update status.

    A source whose credit runs out is closed and flagged as exhausted; an
    exhausted source that regains credit is reopened. Void sources and
    sources closed for any other reason keep their status.
    """
    source.amount_remaining = to_money(source.total_amount) - applied_total(source)

    if source.status == SourceStatus.OPEN and source.amount_remaining == ZERO:
        source.status = SourceStatus.CLOSED
        source.closed_by_exhaustion = True
    elif (
        source.status == SourceStatus.CLOSED
        and source.closed_by_exhaustion
        and source.amount_remaining > ZERO
    ):
        source.status = SourceStatus.OPEN
        source.closed_by_exhaustion = False
    return source
