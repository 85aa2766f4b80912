"""Sales order API endpoints."""

from fastapi import APIRouter, Depends

from settlement_ledger.core.dependencies import (
    get_collection_locks,
    get_ledger_store,
    get_synchronizer,
    ledger_http_error,
)
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.sales_order import SalesOrder, SalesOrderCreate
from settlement_ledger.services.document_service import DocumentService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService

router = APIRouter()


@router.post(
    "/",
    response_model=SalesOrder,
    status_code=201,
    summary="Create sales order",
    responses={422: {"description": "Validation error"}},
)
def create_sales_order(
    data: SalesOrderCreate,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> SalesOrder:
    return DocumentService(store, locks=locks).create_sales_order(data)


@router.get(
    "/{sales_order_id}",
    response_model=SalesOrder,
    summary="Get sales order",
    responses={404: {"description": "Sales order not found"}},
)
def get_sales_order(
    sales_order_id: str,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> SalesOrder:
    try:
        return DocumentService(store, locks=locks).get_sales_order(sales_order_id)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.post(
    "/{sales_order_id}/invoices/{invoice_id}",
    response_model=SalesOrder,
    summary="Attach invoice to sales order",
    responses={404: {"description": "Sales order or invoice not found"}},
)
def attach_invoice(
    sales_order_id: str,
    invoice_id: str,
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> SalesOrder:
    """Link an invoice to the sales order, moving it from any previous order."""
    try:
        return synchronizer.attach_invoice(sales_order_id, invoice_id)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.post(
    "/{sales_order_id}/resync",
    response_model=SalesOrder,
    summary="Recompute sales order payment status",
    responses={404: {"description": "Sales order not found"}},
)
def resync_sales_order(
    sales_order_id: str,
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> SalesOrder:
    try:
        return synchronizer.sync_sales_order(sales_order_id)
    except ValueError as e:
        raise ledger_http_error(e) from None
