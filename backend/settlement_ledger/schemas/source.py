"""Settlement source schemas (payments, credit notes, vendor credits)."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from settlement_ledger.core.money import ZERO, Money
from settlement_ledger.models.shared import generate_id, utc_now
from settlement_ledger.schemas.document import ActivityLogEntry, DocumentType, SourceType


class SourceStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    VOID = "void"


class AppliedRef(BaseModel):
    """Mirror of a SettlementRef, stored on the source and pointing at the document."""

    document_id: str
    document_type: DocumentType
    document_number: str | None = None
    amount_applied: Money
    applied_date: date


class SettlementSource(BaseModel):
    """A payment, credit note or vendor credit that can settle documents."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=generate_id)
    source_type: SourceType
    number: str
    party_id: str | None = None
    transaction_date: date | None = None
    mode: str | None = None
    reference: str | None = None
    total_amount: Money = ZERO
    amount_remaining: Money = ZERO
    applied_to: list[AppliedRef] = Field(default_factory=list)
    status: SourceStatus = SourceStatus.OPEN
    # Set when the engine closed the source because its credit ran out
    closed_by_exhaustion: bool = False
    activity_logs: list[ActivityLogEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SourceCreate(BaseModel):
    number: str | None = Field(default=None, max_length=50)
    total_amount: Money
    party_id: str | None = None
    transaction_date: date | None = None
    mode: str | None = None
    reference: str | None = None
