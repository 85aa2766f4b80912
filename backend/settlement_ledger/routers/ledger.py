"""Ledger maintenance endpoints."""

from fastapi import APIRouter, Depends

from settlement_ledger.core.dependencies import get_collection_locks, get_ledger_store
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.reconciliation import IntegrityReport
from settlement_ledger.services.reconciliation_service import ReconciliationService

router = APIRouter()


@router.get(
    "/integrity",
    response_model=IntegrityReport,
    summary="Verify ledger integrity",
)
def verify_integrity(
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> IntegrityReport:
    """Re-derive every balance from the settlement refs and report mismatches."""
    return ReconciliationService(store, locks=locks).verify()
