"""LedgerDocument model - one row per document of a ledger collection."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, func

from settlement_ledger.core.database import Base


class Collection(str, Enum):
    """Durable collections of the settlement ledger."""

    INVOICES = "invoices"
    BILLS = "bills"
    PAYMENTS_RECEIVED = "payments_received"
    PAYMENTS_MADE = "payments_made"
    CREDIT_NOTES = "credit_notes"
    VENDOR_CREDITS = "vendor_credits"
    SALES_ORDERS = "sales_orders"


class LedgerDocument(Base):
    """LedgerDocument model - stores a document body as JSON.

    The ledger store reads and rewrites whole collections; the table only
    needs the collection name, the document id, the serialized body and the
    document's position in the collection.
    """

    __tablename__ = "ledger_documents"

    collection = Column(String(40), primary_key=True)
    id = Column(String(64), primary_key=True)
    body = Column(JSON, nullable=False, default=dict)
    # Index within the saved collection; lists come back in this order
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_ledger_documents_collection", "collection"),)
