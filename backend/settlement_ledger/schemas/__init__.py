from settlement_ledger.schemas.document import (
    ActivityLogEntry,
    DocumentCreate,
    DocumentStatus,
    DocumentType,
    SettleableDocument,
    SettlementRef,
    SourceType,
)
from settlement_ledger.schemas.reconciliation import IntegrityReport, LedgerIssue
from settlement_ledger.schemas.sales_order import (
    InvoiceSnapshot,
    SalesOrder,
    SalesOrderCreate,
    SalesOrderPaymentStatus,
)
from settlement_ledger.schemas.settlement import (
    AppliedResult,
    ApplyCreditsRequest,
    ApplyCreditsResult,
    ApplySettlementRequest,
    AvailableCredit,
    CreditApplication,
    CreditSuggestion,
    RecordPaymentRequest,
    RecordPaymentResult,
    SettlementTarget,
    SuggestedCredit,
    UpdatePaymentRequest,
)
from settlement_ledger.schemas.source import (
    AppliedRef,
    SettlementSource,
    SourceCreate,
    SourceStatus,
)

__all__ = [
    "ActivityLogEntry",
    "AppliedRef",
    "AppliedResult",
    "ApplyCreditsRequest",
    "ApplyCreditsResult",
    "ApplySettlementRequest",
    "AvailableCredit",
    "CreditApplication",
    "CreditSuggestion",
    "DocumentCreate",
    "DocumentStatus",
    "DocumentType",
    "IntegrityReport",
    "InvoiceSnapshot",
    "LedgerIssue",
    "RecordPaymentRequest",
    "RecordPaymentResult",
    "SalesOrder",
    "SalesOrderCreate",
    "SalesOrderPaymentStatus",
    "SettleableDocument",
    "SettlementRef",
    "SettlementSource",
    "SettlementTarget",
    "SourceCreate",
    "SourceStatus",
    "SourceType",
    "SuggestedCredit",
    "UpdatePaymentRequest",
]
