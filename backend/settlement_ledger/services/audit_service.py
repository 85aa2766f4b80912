"""Audit service for recording activity entries on ledger documents."""

from decimal import Decimal

from pydantic import BaseModel

from settlement_ledger.core.config import settings
from settlement_ledger.core.money import to_money
from settlement_ledger.models.shared import utc_now
from settlement_ledger.schemas.document import ActivityLogEntry, SettleableDocument
from settlement_ledger.schemas.source import SettlementSource


def format_amount(amount: Decimal) -> str:
    return f"{to_money(amount):,.2f}"


def _label(value: str) -> str:
    return value.replace("_", " ").capitalize()


class AuditService:
    """Appends human-readable activity entries to documents.

    Entries are advisory; nothing reads them back to check an invariant.
    """

    def __init__(self, actor: str | None = None):
        self.actor = actor or settings.LEDGER_DEFAULT_ACTOR

    def log(self, document: BaseModel, action: str, description: str) -> ActivityLogEntry:
        """Append an entry to ``document.activity_logs`` and touch updated_at."""
        entry = ActivityLogEntry(action=action, description=description, user=self.actor)
        document.activity_logs.append(entry)  # type: ignore[attr-defined]
        document.updated_at = entry.timestamp  # type: ignore[attr-defined]
        return entry

    def log_created(self, document: BaseModel, label: str, amount: Decimal) -> ActivityLogEntry:
        return self.log(document, "created", f"{label} created for {format_amount(amount)}")

    def log_settlement(
        self,
        document: SettleableDocument,
        source: SettlementSource,
        amount: Decimal,
        reversed_: bool = False,
    ) -> None:
        """Record one settlement (or its reversal) on both sides."""
        source_label = f"{_label(source.source_type.value)} {source.number}"
        document_label = f"{_label(document.document_type.value)} {document.number}"
        if reversed_:
            self.log(
                document,
                "settlement_reversed",
                f"{format_amount(amount)} from {source_label} reversed",
            )
            self.log(
                source,
                "settlement_reversed",
                f"{format_amount(amount)} applied to {document_label} reversed",
            )
        else:
            self.log(
                document,
                "settlement_applied",
                f"{format_amount(amount)} applied from {source_label}",
            )
            self.log(
                source,
                "settlement_applied",
                f"{format_amount(amount)} applied to {document_label}",
            )

    def log_status_change(self, document: BaseModel, old_status: str, new_status: str) -> None:
        """Log a status change; no entry when the status did not move."""
        if old_status == new_status:
            return
        self.log(document, "status_changed", f"Status changed from {old_status} to {new_status}")

    @staticmethod
    def touch(document: BaseModel) -> None:
        document.updated_at = utc_now()  # type: ignore[attr-defined]
