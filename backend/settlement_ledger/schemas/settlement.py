"""Request and result schemas for settlement operations."""

from datetime import date

from pydantic import BaseModel, Field

from settlement_ledger.core.money import ZERO, Money
from settlement_ledger.schemas.document import SettleableDocument, SourceType
from settlement_ledger.schemas.source import SettlementSource


class SettlementTarget(BaseModel):
    """One (document, amount) pair of a settlement batch."""

    document_id: str
    amount: Money


class ApplySettlementRequest(BaseModel):
    targets: list[SettlementTarget] = Field(min_length=1)
    applied_date: date | None = None


class AppliedResult(BaseModel):
    source: SettlementSource
    documents: list[SettleableDocument]
    total_applied: Money = ZERO


class CreditApplication(BaseModel):
    source_id: str
    source_type: SourceType
    amount_to_apply: Money


class ApplyCreditsRequest(BaseModel):
    credits: list[CreditApplication] = Field(min_length=1)
    applied_date: date | None = None


class ApplyCreditsResult(BaseModel):
    document: SettleableDocument
    total_applied: Money = ZERO
    updated_sources: list[SettlementSource] = Field(default_factory=list)


class RecordPaymentRequest(BaseModel):
    amount: Money
    payment_date: date | None = None
    mode: str | None = None
    reference: str | None = None
    number: str | None = Field(default=None, max_length=50)


class RecordPaymentResult(BaseModel):
    document: SettleableDocument
    settlement_source: SettlementSource
    amount_applied: Money = ZERO
    unused_amount: Money = ZERO


class UpdatePaymentRequest(BaseModel):
    """Replacement state for a payment; omitted fields keep their value.

    ``targets`` replaces the whole application set when given; when omitted
    the previous applications are re-applied as they were.
    """

    total_amount: Money | None = None
    targets: list[SettlementTarget] | None = None
    transaction_date: date | None = None
    mode: str | None = None
    reference: str | None = None


class AvailableCredit(BaseModel):
    source_id: str
    source_type: SourceType
    number: str
    transaction_date: date | None = None
    total_amount: Money
    amount_remaining: Money


class SuggestedCredit(BaseModel):
    source_id: str
    source_type: SourceType
    amount_to_apply: Money


class CreditSuggestion(BaseModel):
    document_id: str
    balance_due: Money
    credits: list[SuggestedCredit] = Field(default_factory=list)
    total_suggested: Money = ZERO
