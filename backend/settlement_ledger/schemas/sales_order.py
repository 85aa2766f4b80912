"""Sales order schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from settlement_ledger.core.money import ZERO, Money
from settlement_ledger.models.shared import generate_id, utc_now
from settlement_ledger.schemas.document import ActivityLogEntry, DocumentStatus


class SalesOrderPaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"


class InvoiceSnapshot(BaseModel):
    """Cached view of a linked invoice, kept for display."""

    invoice_id: str
    number: str | None = None
    status: DocumentStatus | None = None
    amount: Money = ZERO
    balance_due: Money = ZERO


class SalesOrder(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=generate_id)
    number: str
    party_id: str | None = None
    total: Money = ZERO
    payment_status: SalesOrderPaymentStatus = SalesOrderPaymentStatus.UNPAID
    invoices: list[InvoiceSnapshot] = Field(default_factory=list)
    activity_logs: list[ActivityLogEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SalesOrderCreate(BaseModel):
    number: str = Field(min_length=1, max_length=50)
    party_id: str | None = None
    total: Money = ZERO
