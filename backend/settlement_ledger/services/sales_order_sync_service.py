"""Propagates invoice payment state to the owning sales order."""

import logging
from collections.abc import Iterable

from settlement_ledger.core.locking import CollectionLocks
from settlement_ledger.core.money import ZERO
from settlement_ledger.models.ledger_document import Collection
from settlement_ledger.repositories.ledger_store import LedgerStore
from settlement_ledger.schemas.document import DocumentStatus, DocumentType, SettleableDocument
from settlement_ledger.schemas.sales_order import (
    InvoiceSnapshot,
    SalesOrder,
    SalesOrderPaymentStatus,
)
from settlement_ledger.services.audit_service import AuditService
from settlement_ledger.services.ledger_base import LedgerService, LedgerSession

logger = logging.getLogger(__name__)

SALES_ORDER_ORIGIN = "sales_order"


def compute_payment_status(invoices: Iterable[SettleableDocument]) -> SalesOrderPaymentStatus:
    """Aggregate payment status of a sales order from its linked invoices."""
    invoices = list(invoices)
    if not invoices:
        return SalesOrderPaymentStatus.UNPAID
    if all(inv.status == DocumentStatus.PAID for inv in invoices):
        return SalesOrderPaymentStatus.PAID
    if any(
        inv.status in (DocumentStatus.PAID, DocumentStatus.PARTIALLY_PAID)
        or inv.amount_paid > ZERO
        for inv in invoices
    ):
        return SalesOrderPaymentStatus.PARTIALLY_PAID
    return SalesOrderPaymentStatus.UNPAID


def snapshot_of(invoice: SettleableDocument) -> InvoiceSnapshot:
    return InvoiceSnapshot(
        invoice_id=invoice.id,
        number=invoice.number,
        status=invoice.status,
        amount=invoice.total,
        balance_due=invoice.balance_due,
    )


class OwnerIndex:
    """Maps invoice ids to the id of the sales order that owns them.

    Built once from the invoices' explicit back-references plus the sales
    orders' snapshot lists (legacy invoices carry no back-reference), then
    kept current by the synchronizer on every link change.
    """

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}
        self.built = False

    def build(
        self, invoices: Iterable[SettleableDocument], orders: Iterable[SalesOrder]
    ) -> None:
        owners: dict[str, str] = {}
        for order in orders:
            for snapshot in order.invoices:
                owners[snapshot.invoice_id] = order.id
        # The explicit back-reference wins over a snapshot entry
        for invoice in invoices:
            if invoice.origin_type == SALES_ORDER_ORIGIN and invoice.origin_id:
                owners[invoice.id] = invoice.origin_id
        self._owners = owners
        self.built = True

    def owner_of(self, invoice_id: str) -> str | None:
        return self._owners.get(invoice_id)

    def invoices_of(self, order_id: str) -> list[str]:
        return [inv for inv, owner in self._owners.items() if owner == order_id]

    def set_owner(self, invoice_id: str, order_id: str) -> None:
        self._owners[invoice_id] = order_id

    def discard(self, invoice_id: str) -> None:
        self._owners.pop(invoice_id, None)

    def __len__(self) -> int:
        return len(self._owners)


class SalesOrderSyncService(LedgerService):
    """Keeps each sales order's payment status and invoice snapshots current.

    The sales-order status is a derived cache: sync failures are logged and
    never propagated to the settlement that triggered them.
    """

    def __init__(
        self,
        store: LedgerStore,
        locks: CollectionLocks | None = None,
        audit: AuditService | None = None,
        owner_index: OwnerIndex | None = None,
    ):
        super().__init__(store, locks=locks, audit=audit)
        self.owner_index = owner_index or OwnerIndex()

    def sync_sales_order_status(self, invoice_id: str) -> SalesOrder | None:
        """Recompute the status of the sales order owning ``invoice_id``.

        Returns the refreshed sales order, or ``None`` if the invoice has no
        owner or the sync failed.
        """
        try:
            with self.unit_of_work(Collection.INVOICES, Collection.SALES_ORDERS) as session:
                order = self._owner(session, invoice_id)
                if order is None:
                    return None
                self.refresh(session, order)
            return order
        except Exception:
            logger.exception("Failed to sync sales order status for invoice %s", invoice_id)
            return None

    def sync_sales_order(self, sales_order_id: str) -> SalesOrder:
        """Recompute one sales order directly.

        Raises:
            NotFoundError: If the sales order does not exist.
        """
        with self.unit_of_work(Collection.INVOICES, Collection.SALES_ORDERS) as session:
            self._ensure_index(session)
            order: SalesOrder = session.get(Collection.SALES_ORDERS, sales_order_id)
            self.refresh(session, order)
        return order

    def attach_invoice(self, sales_order_id: str, invoice_id: str) -> SalesOrder:
        """Link an invoice to a sales order and refresh the order.

        An invoice owned by another order is moved.

        Raises:
            NotFoundError: If the sales order or the invoice does not exist.
        """
        with self.unit_of_work(Collection.INVOICES, Collection.SALES_ORDERS) as session:
            self._ensure_index(session)
            order: SalesOrder = session.get(Collection.SALES_ORDERS, sales_order_id)
            invoice = session.document(DocumentType.INVOICE, invoice_id)

            previous_id = self.owner_index.owner_of(invoice_id)
            if previous_id and previous_id != sales_order_id:
                previous = session.find(Collection.SALES_ORDERS, previous_id)
                if previous is not None:
                    self._drop_snapshot(previous, invoice_id)
                    self.owner_index.discard(invoice_id)
                    self.refresh(session, previous)

            invoice.origin_type = SALES_ORDER_ORIGIN
            invoice.origin_id = sales_order_id
            self.audit.touch(invoice)
            session.mark_dirty(Collection.INVOICES)
            self.owner_index.set_owner(invoice_id, sales_order_id)
            self.refresh(session, order)
        return order

    def detach_invoice(self, invoice_id: str) -> SalesOrder | None:
        """Remove an invoice from its owning sales order, e.g. after deletion.

        Failures are logged and swallowed like every other sync.
        """
        try:
            with self.unit_of_work(Collection.INVOICES, Collection.SALES_ORDERS) as session:
                order = self._owner(session, invoice_id)
                self.owner_index.discard(invoice_id)
                if order is None:
                    return None
                self._drop_snapshot(order, invoice_id)
                invoice = session.find_document(DocumentType.INVOICE, invoice_id)
                if invoice is not None and invoice.origin_id == order.id:
                    invoice.origin_type = None
                    invoice.origin_id = None
                    session.mark_dirty(Collection.INVOICES)
                self.refresh(session, order)
            return order
        except Exception:
            logger.exception("Failed to detach invoice %s from its sales order", invoice_id)
            return None

    def refresh(self, session: LedgerSession, order: SalesOrder) -> None:
        """Recompute ``payment_status`` and the invoice snapshots of ``order``."""
        linked_ids = list(
            dict.fromkeys(
                [*(s.invoice_id for s in order.invoices), *self.owner_index.invoices_of(order.id)]
            )
        )
        invoices: list[SettleableDocument] = []
        for invoice_id in linked_ids:
            invoice = session.find_document(DocumentType.INVOICE, invoice_id)
            if invoice is None:
                # Deleted without detaching; drop the stale link
                self.owner_index.discard(invoice_id)
                continue
            if self.owner_index.owner_of(invoice_id) not in (None, order.id):
                continue
            self.owner_index.set_owner(invoice_id, order.id)
            invoices.append(invoice)

        old_status = order.payment_status
        order.invoices = [snapshot_of(inv) for inv in invoices]
        order.payment_status = compute_payment_status(invoices)
        self.audit.log_status_change(order, old_status.value, order.payment_status.value)
        self.audit.touch(order)
        session.mark_dirty(Collection.SALES_ORDERS)

        logger.debug(
            "Sales order %s payment status %s (%d invoices)",
            order.number,
            order.payment_status.value,
            len(invoices),
        )

    def _ensure_index(self, session: LedgerSession) -> None:
        if not self.owner_index.built:
            self.owner_index.build(
                session.documents(DocumentType.INVOICE),
                session.all(Collection.SALES_ORDERS),
            )

    def _owner(self, session: LedgerSession, invoice_id: str) -> SalesOrder | None:
        self._ensure_index(session)
        order_id = self.owner_index.owner_of(invoice_id)
        if order_id is None:
            return None
        order = session.find(Collection.SALES_ORDERS, order_id)
        if order is None:
            logger.warning(
                "Invoice %s references missing sales order %s", invoice_id, order_id
            )
            self.owner_index.discard(invoice_id)
        return order

    @staticmethod
    def _drop_snapshot(order: SalesOrder, invoice_id: str) -> None:
        order.invoices = [s for s in order.invoices if s.invoice_id != invoice_id]
