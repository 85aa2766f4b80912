from settlement_ledger.models.idempotency_record import IdempotencyRecord
from settlement_ledger.models.ledger_document import Collection, LedgerDocument

__all__ = [
    "Collection",
    "IdempotencyRecord",
    "LedgerDocument",
]
