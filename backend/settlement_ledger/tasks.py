"""Enqueue helpers for the ledger worker.

Jobs carry deterministic ids, so enqueueing the same check or resync twice
while one is still queued runs it only once.
"""

from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from settlement_ledger.core.config import settings

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

VERIFY_LEDGER_JOB_ID = "verify-ledger"


def sync_sales_order_job_id(sales_order_id: str) -> str:
    return f"sync-sales-order:{sales_order_id}"


async def get_redis_pool() -> ArqRedis:
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job | None:
    """Enqueue ``task_name`` on the worker queue.

    Returns ``None`` when a job with the same ``_job_id`` is already queued.
    """
    pool = await get_redis_pool()
    try:
        return await pool.enqueue_job(task_name, *args, **kwargs)
    finally:
        await pool.close()


async def enqueue_verify_ledger() -> Job | None:
    """Run a ledger integrity check ahead of the hourly schedule."""
    return await enqueue_task("verify_ledger_task", _job_id=VERIFY_LEDGER_JOB_ID)


async def enqueue_sync_sales_order(sales_order_id: str) -> Job | None:
    """Recompute one sales order's payment status in the background."""
    return await enqueue_task(
        "sync_sales_order_task",
        sales_order_id,
        _job_id=sync_sales_order_job_id(sales_order_id),
    )
