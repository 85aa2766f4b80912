"""FastAPI dependencies wiring the ledger store, locks and services together."""

from pathlib import Path

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from settlement_ledger.core.config import settings
from settlement_ledger.core.database import get_db
from settlement_ledger.core.exceptions import NotFoundError, ReversalMismatchError
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import (
    JsonFileLedgerStore,
    LedgerStore,
    SqlLedgerStore,
)
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService


def build_ledger_store(db: Session) -> LedgerStore:
    """Ledger store for the configured backend; the SQL store shares ``db``."""
    if settings.json_store_enabled:
        return JsonFileLedgerStore(Path(settings.APP_DATA_PATH) / settings.LEDGER_JSON_DIRNAME)
    return SqlLedgerStore(db)


def get_ledger_store(db: Session = Depends(get_db)) -> LedgerStore:
    return build_ledger_store(db)


def get_collection_locks(request: Request) -> CollectionLocks:
    """Process-wide collection locks, created at application startup."""
    locks: CollectionLocks | None = getattr(request.app.state, "ledger_locks", None)
    if locks is None:
        locks = CollectionLocks()
        request.app.state.ledger_locks = locks
    return locks


def get_synchronizer(
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> SalesOrderSyncService:
    return SalesOrderSyncService(store, locks=locks)


def ledger_http_error(exc: ValueError) -> HTTPException:
    """Map a ledger error onto the HTTP status the API reports for it."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ReversalMismatchError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
