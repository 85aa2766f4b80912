"""Shared test fixtures for all test modules."""

import contextlib
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import settlement_ledger.models  # noqa: F401
from settlement_ledger.core import database as db_module
from settlement_ledger.core.database import Base
from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.repositories.ledger_store import InMemoryLedgerStore
from settlement_ledger.schemas.document import DocumentCreate, DocumentType, SourceType
from settlement_ledger.schemas.source import SourceCreate
from settlement_ledger.services.document_service import DocumentService
from settlement_ledger.services.sales_order_sync_service import SalesOrderSyncService

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

PARTY_ID = "party-0001"
OTHER_PARTY_ID = "party-0002"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and session factory so all application
    code uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def store():
    """An empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def locks():
    return CollectionLocks()


@pytest.fixture
def synchronizer(store, locks):
    return SalesOrderSyncService(store, locks=locks)


@pytest.fixture
def documents(store, locks, synchronizer):
    return DocumentService(store, locks=locks, synchronizer=synchronizer)


@pytest.fixture
def make_invoice(documents):
    """Factory creating an open invoice for the default party."""

    def _make(total="1000.00", number=None, party_id=PARTY_ID, **kwargs):
        _make.counter += 1
        return documents.create_document(
            DocumentType.INVOICE,
            DocumentCreate(
                number=number or f"INV-{_make.counter:06d}",
                total=Decimal(total),
                party_id=party_id,
                document_date=date(2026, 1, 1),
                **kwargs,
            ),
        )

    _make.counter = 0
    return _make


@pytest.fixture
def make_bill(documents):
    """Factory creating an open bill for the default party."""

    def _make(total="1000.00", number=None, party_id=PARTY_ID, **kwargs):
        _make.counter += 1
        return documents.create_document(
            DocumentType.BILL,
            DocumentCreate(
                number=number or f"BILL-{_make.counter:06d}",
                total=Decimal(total),
                party_id=party_id,
                document_date=date(2026, 1, 1),
                **kwargs,
            ),
        )

    _make.counter = 0
    return _make


@pytest.fixture
def make_source(documents):
    """Factory creating an unapplied settlement source."""

    def _make(
        source_type=SourceType.CREDIT_NOTE,
        total="500.00",
        party_id=PARTY_ID,
        transaction_date=date(2026, 1, 1),
    ):
        return documents.create_source(
            source_type,
            SourceCreate(
                total_amount=Decimal(total),
                party_id=party_id,
                transaction_date=transaction_date,
            ),
        )

    return _make
