"""LedgerDocument repository for data access."""

from typing import Any

from sqlalchemy.orm import Session

from settlement_ledger.models.ledger_document import LedgerDocument


class LedgerDocumentRepository:
    """Repository for LedgerDocument rows.

    Methods here stage changes on the session; ``commit`` and ``rollback``
    are left to the caller so several collections can be written as one unit.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, collection: str) -> list[LedgerDocument]:
        """Get every row of a collection in the order it was last saved."""
        return (
            self.db.query(LedgerDocument)
            .filter(LedgerDocument.collection == collection)
            .order_by(LedgerDocument.position.asc(), LedgerDocument.id.asc())
            .all()
        )

    def get_by_id(self, collection: str, document_id: str) -> LedgerDocument | None:
        return (
            self.db.query(LedgerDocument)
            .filter(
                LedgerDocument.collection == collection,
                LedgerDocument.id == document_id,
            )
            .first()
        )

    def replace_collection(self, collection: str, bodies: list[dict[str, Any]]) -> None:
        """Make the stored collection equal to ``bodies``.

        Rows whose id is missing from ``bodies`` are deleted, changed rows are
        updated and new ids are inserted. Each row keeps its index in
        ``bodies`` as ``position``.
        """
        existing = {str(row.id): row for row in self.get_all(collection)}
        seen: set[str] = set()
        for position, body in enumerate(bodies):
            document_id = str(body["id"])
            seen.add(document_id)
            row = existing.get(document_id)
            if row is None:
                self.db.add(
                    LedgerDocument(
                        collection=collection, id=document_id, body=body, position=position
                    )
                )
                continue
            if row.body != body:
                row.body = body  # type: ignore[assignment]
            if row.position != position:
                row.position = position  # type: ignore[assignment]

        for document_id, row in existing.items():
            if document_id not in seen:
                self.db.delete(row)
        self.db.flush()

    def count(self, collection: str) -> int:
        return self.db.query(LedgerDocument).filter(LedgerDocument.collection == collection).count()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
