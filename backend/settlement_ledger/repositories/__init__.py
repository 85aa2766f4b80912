from settlement_ledger.repositories.idempotency_repository import IdempotencyRepository
from settlement_ledger.repositories.ledger_document_repository import LedgerDocumentRepository
from settlement_ledger.repositories.ledger_store import (
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStore,
    SqlLedgerStore,
)

__all__ = [
    "IdempotencyRepository",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerDocumentRepository",
    "LedgerStore",
    "SqlLedgerStore",
]
