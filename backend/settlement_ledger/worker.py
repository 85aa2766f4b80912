import logging
from typing import Any

from arq import cron

from settlement_ledger.core.config import settings
from settlement_ledger.core.database import SessionLocal
from settlement_ledger.core.dependencies import build_ledger_store
from settlement_ledger.repositories.idempotency_repository import IdempotencyRepository
from settlement_ledger.services.reconciliation_service import ReconciliationService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService
from settlement_ledger.tasks import redis_settings

logger = logging.getLogger(__name__)


async def verify_ledger_task(ctx: dict[str, Any]) -> int:
    """Background task: re-derive every balance and report ledger inconsistencies.

    Runs hourly. Returns the number of issues found.
    """
    db = SessionLocal()
    try:
        report = ReconciliationService(build_ledger_store(db)).verify()
        for issue in report.issues:
            logger.warning(
                "Ledger issue [%s] %s %s: %s",
                issue.check,
                issue.collection,
                issue.document_id,
                issue.detail,
            )
        return len(report.issues)
    finally:
        db.close()


async def sync_sales_order_task(ctx: dict[str, Any], sales_order_id: str) -> str:
    """Background task: recompute one sales order's payment status."""
    db = SessionLocal()
    try:
        order = SalesOrderSyncService(build_ledger_store(db)).sync_sales_order(sales_order_id)
        logger.info("Resynced sales order %s: %s", order.number, order.payment_status.value)
        return order.payment_status.value
    finally:
        db.close()


async def cleanup_idempotency_records_task(ctx: dict[str, Any]) -> int:
    """Background task: purge idempotency records past their retention window.

    Runs daily.
    """
    db = SessionLocal()
    try:
        repo = IdempotencyRepository(db)
        count = repo.delete_expired(max_age_hours=settings.IDEMPOTENCY_MAX_AGE_HOURS)
        if count > 0:
            logger.info("Deleted %d expired idempotency records", count)
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [
        verify_ledger_task,
        sync_sales_order_task,
        cleanup_idempotency_records_task,
    ]
    cron_jobs = [
        cron(verify_ledger_task, minute={0}),  # hourly
        cron(cleanup_idempotency_records_task, hour=0, minute=0),  # daily at midnight
    ]
    redis_settings = redis_settings
