"""Repository for idempotency records."""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_ledger.models.idempotency_record import IdempotencyRecord
from settlement_ledger.models.shared import generate_id


class IdempotencyRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, idempotency_key: str) -> IdempotencyRecord | None:
        return (
            self.db.query(IdempotencyRecord)
            .filter(IdempotencyRecord.idempotency_key == idempotency_key)
            .first()
        )

    def create(
        self,
        *,
        idempotency_key: str,
        request_method: str,
        request_path: str,
        request_hash: str | None = None,
        response_status: int | None = None,
        response_body: dict[str, Any] | None = None,
    ) -> IdempotencyRecord:
        record = IdempotencyRecord(
            id=generate_id(),
            idempotency_key=idempotency_key,
            request_method=request_method,
            request_path=request_path,
            request_hash=request_hash,
            response_status=response_status,
            response_body=response_body,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def claim(
        self, idempotency_key: str, request_method: str, request_path: str, request_hash: str
    ) -> tuple[IdempotencyRecord, bool]:
        """Get the record for ``idempotency_key``, creating it if needed.

        Returns ``(record, created)``. Two requests racing on a new key both
        end up with the single stored record.
        """
        existing = self.get_by_key(idempotency_key)
        if existing is not None:
            return existing, False
        try:
            record = self.create(
                idempotency_key=idempotency_key,
                request_method=request_method,
                request_path=request_path,
                request_hash=request_hash,
            )
        except IntegrityError:
            self.db.rollback()
            winner = self.get_by_key(idempotency_key)
            if winner is None:
                raise
            return winner, False
        return record, True

    def update_response(
        self,
        record: IdempotencyRecord,
        response_status: int,
        response_body: dict[str, Any],
    ) -> IdempotencyRecord:
        record.response_status = response_status  # type: ignore[assignment]
        record.response_body = response_body  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(record)
        return record

    def release(self, idempotency_key: str) -> bool:
        """Delete a claimed key that has no response yet."""
        count = (
            self.db.query(IdempotencyRecord)
            .filter(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.response_status.is_(None),
            )
            .delete()
        )
        self.db.commit()
        return bool(count)

    def delete_expired(self, max_age_hours: int = 24) -> int:
        cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
        count = (
            self.db.query(IdempotencyRecord)
            .filter(IdempotencyRecord.created_at < cutoff)
            .delete()
        )
        self.db.commit()
        return int(count)
