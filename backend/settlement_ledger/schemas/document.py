"""Settleable document schemas (invoices and bills)."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from settlement_ledger.core.money import ZERO, Money
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.models.shared import generate_id, utc_now


class DocumentType(str, Enum):
    INVOICE = "invoice"
    BILL = "bill"

    @property
    def collection(self) -> Collection:
        return Collection.INVOICES if self is DocumentType.INVOICE else Collection.BILLS


class SourceType(str, Enum):
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_MADE = "payment_made"
    CREDIT_NOTE = "credit_note"
    VENDOR_CREDIT = "vendor_credit"

    @property
    def collection(self) -> Collection:
        return _SOURCE_COLLECTIONS[self]

    @property
    def target_type(self) -> DocumentType:
        """The kind of document this source settles."""
        if self in (SourceType.PAYMENT_RECEIVED, SourceType.CREDIT_NOTE):
            return DocumentType.INVOICE
        return DocumentType.BILL

    @classmethod
    def payment_for(cls, document_type: DocumentType) -> "SourceType":
        if document_type is DocumentType.INVOICE:
            return cls.PAYMENT_RECEIVED
        return cls.PAYMENT_MADE

    @classmethod
    def credit_for(cls, document_type: DocumentType) -> "SourceType":
        if document_type is DocumentType.INVOICE:
            return cls.CREDIT_NOTE
        return cls.VENDOR_CREDIT


_SOURCE_COLLECTIONS = {
    SourceType.PAYMENT_RECEIVED: Collection.PAYMENTS_RECEIVED,
    SourceType.PAYMENT_MADE: Collection.PAYMENTS_MADE,
    SourceType.CREDIT_NOTE: Collection.CREDIT_NOTES,
    SourceType.VENDOR_CREDIT: Collection.VENDOR_CREDITS,
}


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    VOID = "void"


class ActivityLogEntry(BaseModel):
    """Human-readable audit trail entry. Advisory only."""

    id: str = Field(default_factory=generate_id)
    timestamp: datetime = Field(default_factory=utc_now)
    action: str
    description: str
    user: str


class SettlementRef(BaseModel):
    """One application of a settlement source, stored on the settled document."""

    source_id: str
    source_type: SourceType
    source_number: str | None = None
    amount_applied: Money
    applied_date: date


class SettleableDocument(BaseModel):
    """An invoice or bill carrying a total owed and a balance due.

    Fields the ledger does not own (line items, addresses, notes) are kept as
    extras and written back untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=generate_id)
    document_type: DocumentType
    number: str
    party_id: str | None = None
    document_date: date | None = None
    total: Money = ZERO
    amount_paid: Money = ZERO
    balance_due: Money = ZERO
    status: DocumentStatus = DocumentStatus.OPEN
    # Status to return to once every settlement is reversed (draft, open or pending)
    unsettled_status: DocumentStatus | None = None
    settlements: list[SettlementRef] = Field(default_factory=list)
    activity_logs: list[ActivityLogEntry] = Field(default_factory=list)

    # Back-reference to the document this one was raised from, e.g. a sales order
    origin_type: str | None = None
    origin_id: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class DocumentCreate(BaseModel):
    number: str = Field(min_length=1, max_length=50)
    total: Money
    party_id: str | None = None
    document_date: date | None = None
    status: DocumentStatus = DocumentStatus.OPEN
    origin_type: str | None = None
    origin_id: str | None = None
