"""Replay records for settlement requests sent with an ``Idempotency-Key``."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from settlement_ledger.core.database import Base
from settlement_ledger.models.shared import generate_id


class IdempotencyRecord(Base):
    """One key, the request it was first used with, and the response to replay."""

    __tablename__ = "idempotency_records"

    id = Column(String(64), primary_key=True, default=generate_id)
    idempotency_key = Column(String(255), nullable=False, unique=True, index=True)
    request_method = Column(String(10), nullable=False)
    request_path = Column(String(500), nullable=False)
    # sha256 of method, path and body; a key may only be replayed for the same request
    request_hash = Column(String(64), nullable=True)
    response_status = Column(Integer, nullable=True)
    response_body = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
