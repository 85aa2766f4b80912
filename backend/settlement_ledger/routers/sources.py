"""Settlement source API endpoints (payments, credit notes, vendor credits)."""

from fastapi import APIRouter, Depends, Query, Response

from settlement_ledger.core.dependencies import (
    get_collection_locks,
    get_ledger_store,
    get_synchronizer,
    ledger_http_error,
)
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import SettleableDocument, SourceType
from settlement_ledger.schemas.settlement import (
    AppliedResult,
    ApplySettlementRequest,
    UpdatePaymentRequest,
)
from settlement_ledger.schemas.source import SettlementSource, SourceCreate
from settlement_ledger.services.document_service import DocumentService
from settlement_ledger.services.payment_service import PaymentService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService
from settlement_ledger.services.settlement_service import SettlementService

router = APIRouter()


@router.post(
    "/{source_type}",
    response_model=SettlementSource,
    status_code=201,
    summary="Create settlement source",
    responses={
        400: {"description": "Invalid amount"},
        422: {"description": "Validation error"},
    },
)
def create_source(
    source_type: SourceType,
    data: SourceCreate,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> SettlementSource:
    """Create an unapplied payment, credit note or vendor credit."""
    try:
        return DocumentService(store, locks=locks).create_source(source_type, data)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.get(
    "/{source_type}",
    response_model=list[SettlementSource],
    summary="List settlement sources",
)
def list_sources(
    source_type: SourceType,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    party_id: str | None = None,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> list[SettlementSource]:
    sources = DocumentService(store, locks=locks).list_sources(source_type, party_id)
    response.headers["X-Total-Count"] = str(len(sources))
    return sources[skip : skip + limit]


@router.get(
    "/{source_type}/{source_id}",
    response_model=SettlementSource,
    summary="Get settlement source",
    responses={404: {"description": "Source not found"}},
)
def get_source(
    source_type: SourceType,
    source_id: str,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
) -> SettlementSource:
    try:
        return DocumentService(store, locks=locks).get_source(source_type, source_id)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.post(
    "/{source_type}/{source_id}/apply",
    response_model=AppliedResult,
    summary="Apply source to documents",
    responses={
        400: {"description": "Batch rejected (over-application, insufficient credit, state)"},
        404: {"description": "Source or document not found"},
        422: {"description": "Validation error"},
    },
)
def apply_source(
    source_type: SourceType,
    source_id: str,
    data: ApplySettlementRequest,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> AppliedResult:
    """Apply the source against one or more documents; all or nothing."""
    service = SettlementService(store, locks=locks, synchronizer=synchronizer)
    try:
        return service.apply_settlement(
            source_type, source_id, data.targets, applied_date=data.applied_date
        )
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.put(
    "/{source_type}/{source_id}",
    response_model=AppliedResult,
    summary="Edit settlement source",
    responses={
        400: {"description": "New state rejected; the previous state is kept"},
        404: {"description": "Source or document not found"},
        409: {"description": "Settlement cross-links are inconsistent"},
    },
)
def update_source(
    source_type: SourceType,
    source_id: str,
    data: UpdatePaymentRequest,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> AppliedResult:
    """Reverse the source's applications and re-apply the new state."""
    service = PaymentService(store, locks=locks, synchronizer=synchronizer)
    try:
        return service.update_payment(
            source_type,
            source_id,
            total_amount=data.total_amount,
            targets=data.targets,
            transaction_date=data.transaction_date,
            mode=data.mode,
            reference=data.reference,
        )
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.delete(
    "/{source_type}/{source_id}",
    status_code=204,
    summary="Delete settlement source",
    responses={409: {"description": "Settlement cross-links are inconsistent"}},
)
def delete_source(
    source_type: SourceType,
    source_id: str,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> None:
    """Reverse every application, then delete. Deleting twice is a no-op."""
    service = PaymentService(store, locks=locks, synchronizer=synchronizer)
    try:
        service.delete_payment(source_type, source_id)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.post(
    "/{source_type}/{source_id}/void",
    response_model=SettlementSource,
    summary="Void settlement source",
    responses={
        404: {"description": "Source not found"},
        409: {"description": "Settlement cross-links are inconsistent"},
    },
)
def void_source(
    source_type: SourceType,
    source_id: str,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> SettlementSource:
    service = PaymentService(store, locks=locks, synchronizer=synchronizer)
    try:
        return service.void_payment(source_type, source_id)
    except ValueError as e:
        raise ledger_http_error(e) from None


@router.delete(
    "/{source_type}/{source_id}/applications/{document_id}",
    response_model=SettleableDocument,
    summary="Remove source application from a document",
    responses={
        404: {"description": "Document not found"},
        409: {"description": "Settlement cross-links are inconsistent"},
    },
)
def remove_application(
    source_type: SourceType,
    source_id: str,
    document_id: str,
    store: LedgerStore = Depends(get_ledger_store),
    locks: CollectionLocks = Depends(get_collection_locks),
    synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
) -> SettleableDocument:
    """Reverse the source's applications on one document. Safe to repeat."""
    service = PaymentService(store, locks=locks, synchronizer=synchronizer)
    try:
        return service.reverse_application(source_type, source_id, document_id)
    except ValueError as e:
        raise ledger_http_error(e) from None
