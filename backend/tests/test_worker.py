"""Tests for the arq ledger jobs: integrity check, sales-order sync and replay-record purge."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from settlement_ledger.core import database as db_module
from settlement_ledger.core.database import get_db
from settlement_ledger.core.exceptions import NotFoundError
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.repositories.idempotency_repository import IdempotencyRepository
from settlement_ledger.repositories.ledger_store import SqlLedgerStore
from settlement_ledger.schemas.document import DocumentCreate, DocumentType
from settlement_ledger.schemas.sales_order import SalesOrderCreate
from settlement_ledger.services.document_service import DocumentService
from settlement_ledger.services.settlement_service import SettlementService
from settlement_ledger.worker import (
    WorkerSettings,
    cleanup_idempotency_records_task,
    sync_sales_order_task,
    verify_ledger_task,
)


@pytest.fixture
def db_session():
    """A session on the patched in-memory database."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture(autouse=True)
def worker_sessions():
    """Point the worker's session factory at the test database."""
    with patch("settlement_ledger.worker.SessionLocal", db_module.SessionLocal):
        yield


@pytest.fixture
def sql_store(db_session):
    return SqlLedgerStore(db_session)


@pytest.fixture
def paid_order(sql_store):
    """A sales order whose only invoice has been paid in full."""
    documents = DocumentService(sql_store)
    order = documents.create_sales_order(SalesOrderCreate(number="SO-000001"))
    invoice = documents.create_document(
        DocumentType.INVOICE,
        DocumentCreate(
            number="INV-000001",
            total=Decimal("100.00"),
            origin_type="sales_order",
            origin_id=order.id,
        ),
    )
    SettlementService(sql_store).record_payment(
        DocumentType.INVOICE, invoice.id, Decimal("100.00")
    )
    return order


class TestVerifyLedgerTask:
    @pytest.mark.asyncio
    async def test_clean_ledger_has_no_issues(self, paid_order):
        assert await verify_ledger_task({}) == 0

    @pytest.mark.asyncio
    async def test_reports_issue_count(self, sql_store, paid_order, caplog):
        raw = sql_store.load(Collection.INVOICES)
        raw[0]["amount_paid"] = "40.00"
        sql_store.save(Collection.INVOICES, raw)

        result = await verify_ledger_task({})

        assert result == 1
        assert "Ledger issue [amount_paid]" in caplog.text

    @pytest.mark.asyncio
    async def test_closes_session(self):
        mock_session = MagicMock()
        mock_service = MagicMock()
        mock_service.verify.return_value.issues = []

        with (
            patch("settlement_ledger.worker.SessionLocal", return_value=mock_session),
            patch("settlement_ledger.worker.ReconciliationService", return_value=mock_service),
        ):
            assert await verify_ledger_task({}) == 0

        mock_session.close.assert_called_once()


class TestSyncSalesOrderTask:
    @pytest.mark.asyncio
    async def test_returns_payment_status(self, paid_order):
        assert await sync_sales_order_task({}, paid_order.id) == "Paid"

    @pytest.mark.asyncio
    async def test_unknown_order_raises(self):
        with pytest.raises(NotFoundError):
            await sync_sales_order_task({}, "missing")


class TestCleanupIdempotencyRecordsTask:
    @pytest.mark.asyncio
    async def test_deletes_expired_records(self, db_session):
        repo = IdempotencyRepository(db_session)
        old = repo.create(
            idempotency_key="old-key",
            request_method="POST",
            request_path="/v1/invoices/x/record-payment",
            response_status=201,
            response_body={},
        )
        old.created_at = datetime.now(UTC) - timedelta(hours=48)  # type: ignore[assignment]
        db_session.commit()
        repo.create(
            idempotency_key="new-key",
            request_method="POST",
            request_path="/v1/invoices/x/record-payment",
        )

        assert await cleanup_idempotency_records_task({}) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self):
        assert await cleanup_idempotency_records_task({}) == 0


class TestWorkerSettings:
    def test_functions_registered(self):
        func_names = [f.__name__ for f in WorkerSettings.functions]
        assert func_names == [
            "verify_ledger_task",
            "sync_sales_order_task",
            "cleanup_idempotency_records_task",
        ]

    def test_verify_cron_runs_hourly(self):
        job = next(
            j for j in WorkerSettings.cron_jobs if j.coroutine.__name__ == "verify_ledger_task"
        )
        assert job.minute == {0}

    def test_cleanup_cron_runs_daily(self):
        job = next(
            j
            for j in WorkerSettings.cron_jobs
            if j.coroutine.__name__ == "cleanup_idempotency_records_task"
        )
        assert job.hour == 0
        assert job.minute == 0

    def test_redis_settings_configured(self):
        from settlement_ledger.tasks import redis_settings

        assert WorkerSettings.redis_settings is redis_settings
