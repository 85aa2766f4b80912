import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from settlement_ledger.core.config import settings
from settlement_ledger.core.database import init_db
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.routers import documents, ledger, sales_orders, sources

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Invoices", "description": "Receivable documents and their settlements."},
    {"name": "Bills", "description": "Payable documents and their settlements."},
    {
        "name": "Sources",
        "description": "Payments, credit notes and vendor credits applied to documents.",
    },
    {"name": "Sales Orders", "description": "Sales orders and their aggregate payment status."},
    {"name": "Ledger", "description": "Ledger integrity checks."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    logger.info("Ledger store backend: %s", settings.LEDGER_STORE_BACKEND)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Receivables and payables settlement ledger. "
        "Apply payments, credit notes and vendor credits to invoices and bills, "
        "and reverse them when a payment is edited, voided or deleted."
    ),
    openapi_tags=OPENAPI_TAGS,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# One lock registry per process; every ledger mutation goes through it
app.state.ledger_locks = CollectionLocks()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Idempotency-Replayed"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(documents.invoices_router, prefix="/v1/invoices", tags=["Invoices"])
app.include_router(documents.bills_router, prefix="/v1/bills", tags=["Bills"])
app.include_router(sources.router, prefix="/v1/sources", tags=["Sources"])
app.include_router(sales_orders.router, prefix="/v1/sales_orders", tags=["Sales Orders"])
app.include_router(ledger.router, prefix="/v1/ledger", tags=["Ledger"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "store": settings.LEDGER_STORE_BACKEND,
        "status": "running",
    }
