"""Invoice and bill API endpoints.

Invoices and bills share one settlement surface; ``build_router`` creates the
router for one document type and ``main`` mounts it under its own prefix.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from settlement_ledger.core.database import get_db
from settlement_ledger.core.dependencies import (
    get_collection_locks,
    get_ledger_store,
    get_synchronizer,
    ledger_http_error,
)
from settlement_ledger.core.idempotency import (
    IdempotencyResult,
    check_idempotency,
    record_idempotency_response,
    release_idempotency_key,
)
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import DocumentCreate, DocumentType, SettleableDocument
from settlement_ledger.schemas.settlement import (
    ApplyCreditsRequest,
    ApplyCreditsResult,
    AvailableCredit,
    CreditSuggestion,
    RecordPaymentRequest,
    RecordPaymentResult,
)
from settlement_ledger.services.credit_allocation_service import CreditAllocationService
from settlement_ledger.services.document_service import DocumentService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService
from settlement_ledger.services.settlement_service import SettlementService


def build_router(document_type: DocumentType) -> APIRouter:
    router = APIRouter()
    label = document_type.value.capitalize()

    @router.post(
        "/",
        response_model=SettleableDocument,
        status_code=201,
        summary=f"Create {document_type.value}",
        responses={
            400: {"description": f"Invalid {document_type.value}"},
            404: {"description": "Referenced sales order not found"},
            422: {"description": "Validation error"},
        },
    )
    def create_document(
        data: DocumentCreate,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
        synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
    ) -> SettleableDocument:
        """Create a document with nothing settled yet."""
        service = DocumentService(store, locks=locks, synchronizer=synchronizer)
        try:
            return service.create_document(document_type, data)
        except ValueError as e:
            raise ledger_http_error(e) from None

    @router.get(
        "/",
        response_model=list[SettleableDocument],
        summary=f"List {document_type.value}s",
    )
    def list_documents(
        response: Response,
        skip: int = Query(default=0, ge=0),
        limit: int = Query(default=100, ge=1, le=1000),
        party_id: str | None = None,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
    ) -> list[SettleableDocument]:
        documents = DocumentService(store, locks=locks).list_documents(document_type, party_id)
        response.headers["X-Total-Count"] = str(len(documents))
        return documents[skip : skip + limit]

    @router.get(
        "/{document_id}",
        response_model=SettleableDocument,
        summary=f"Get {document_type.value}",
        responses={404: {"description": f"{label} not found"}},
    )
    def get_document(
        document_id: str,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
    ) -> SettleableDocument:
        try:
            return DocumentService(store, locks=locks).get_document(document_type, document_id)
        except ValueError as e:
            raise ledger_http_error(e) from None

    @router.delete(
        "/{document_id}",
        status_code=204,
        summary=f"Delete {document_type.value}",
        responses={
            404: {"description": f"{label} not found"},
            409: {"description": "Settlement cross-links are inconsistent"},
        },
    )
    def delete_document(
        document_id: str,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
        synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
    ) -> None:
        """Reverse every settlement of the document, then delete it."""
        service = DocumentService(store, locks=locks, synchronizer=synchronizer)
        try:
            deleted = service.delete_document(document_type, document_id)
        except ValueError as e:
            raise ledger_http_error(e) from None
        if not deleted:
            raise HTTPException(status_code=404, detail=f"{label} not found")

    @router.post(
        "/{document_id}/void",
        response_model=SettleableDocument,
        summary=f"Void {document_type.value}",
        responses={
            404: {"description": f"{label} not found"},
            409: {"description": "Settlement cross-links are inconsistent"},
        },
    )
    def void_document(
        document_id: str,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
        synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
    ) -> SettleableDocument:
        """Reverse every settlement of the document and mark it void."""
        service = DocumentService(store, locks=locks, synchronizer=synchronizer)
        try:
            return service.void_document(document_type, document_id)
        except ValueError as e:
            raise ledger_http_error(e) from None

    @router.post(
        "/{document_id}/record-payment",
        response_model=RecordPaymentResult,
        status_code=201,
        summary=f"Record payment against {document_type.value}",
        responses={
            400: {"description": f"{label} cannot accept a payment"},
            404: {"description": f"{label} not found"},
            409: {"description": "A request with this Idempotency-Key is still in progress"},
            422: {"description": "Validation error or Idempotency-Key reused"},
        },
    )
    def record_payment(
        document_id: str,
        data: RecordPaymentRequest,
        request: Request,
        db: Session = Depends(get_db),
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
        synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
    ) -> RecordPaymentResult | JSONResponse:
        """Record a payment and apply it; any excess stays on the payment as credit."""
        idempotency = check_idempotency(request, db, data.model_dump(mode="json"))
        if isinstance(idempotency, JSONResponse):
            return idempotency

        service = SettlementService(store, locks=locks, synchronizer=synchronizer)
        try:
            result = service.record_payment(
                document_type,
                document_id,
                data.amount,
                payment_date=data.payment_date,
                mode=data.mode,
                reference=data.reference,
                number=data.number,
            )
        except ValueError as e:
            release_idempotency_key(db, idempotency)
            raise ledger_http_error(e) from None
        except Exception:
            release_idempotency_key(db, idempotency)
            raise

        if isinstance(idempotency, IdempotencyResult):
            body = result.model_dump(mode="json")
            record_idempotency_response(db, idempotency.key, 201, body)

        return result

    @router.post(
        "/{document_id}/apply-credits",
        response_model=ApplyCreditsResult,
        summary=f"Apply credits to {document_type.value}",
        responses={
            400: {"description": "Credits cannot be applied"},
            404: {"description": f"{label} or credit not found"},
            422: {"description": "Validation error"},
        },
    )
    def apply_credits(
        document_id: str,
        data: ApplyCreditsRequest,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
        synchronizer: SalesOrderSyncService = Depends(get_synchronizer),
    ) -> ApplyCreditsResult:
        """Apply several existing credits at once; all or nothing."""
        service = SettlementService(store, locks=locks, synchronizer=synchronizer)
        try:
            return service.apply_credits(
                document_type, document_id, data.credits, applied_date=data.applied_date
            )
        except ValueError as e:
            raise ledger_http_error(e) from None

    @router.get(
        "/{document_id}/available-credits",
        response_model=list[AvailableCredit],
        summary=f"List credits available to {document_type.value}",
        responses={404: {"description": f"{label} not found"}},
    )
    def available_credits(
        document_id: str,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
    ) -> list[AvailableCredit]:
        try:
            document = DocumentService(store, locks=locks).get_document(document_type, document_id)
        except ValueError as e:
            raise ledger_http_error(e) from None
        service = CreditAllocationService(store, locks=locks)
        return service.list_available_credits(document_type, document.party_id)

    @router.get(
        "/{document_id}/credit-suggestion",
        response_model=CreditSuggestion,
        summary=f"Suggest credits for {document_type.value}",
        responses={404: {"description": f"{label} not found"}},
    )
    def credit_suggestion(
        document_id: str,
        store: LedgerStore = Depends(get_ledger_store),
        locks: CollectionLocks = Depends(get_collection_locks),
    ) -> CreditSuggestion:
        try:
            return CreditAllocationService(store, locks=locks).suggest_allocation(
                document_type, document_id
            )
        except ValueError as e:
            raise ledger_http_error(e) from None

    return router


invoices_router = build_router(DocumentType.INVOICE)
bills_router = build_router(DocumentType.BILL)
