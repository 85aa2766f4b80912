"""Tests for document, source and sales order creation and document delete/void."""

from decimal import Decimal

import pytest

from settlement_ledger.core.exceptions import (
    InvalidAmountError,
    InvalidTargetStateError,
    NotFoundError,
)
from settlement_ledger.core.money import ZERO
from settlement_ledger.schemas.document import DocumentStatus, DocumentType, SourceType
from settlement_ledger.schemas.sales_order import SalesOrderCreate, SalesOrderPaymentStatus
from settlement_ledger.schemas.settlement import SettlementTarget
from settlement_ledger.schemas.source import SourceCreate
from settlement_ledger.services.settlement_service import SettlementService
from tests.conftest import OTHER_PARTY_ID, PARTY_ID


@pytest.fixture
def settlements(store, locks, synchronizer):
    return SettlementService(store, locks=locks, synchronizer=synchronizer)


class TestCreate:
    def test_create_invoice(self, documents, make_invoice):
        invoice = make_invoice("1250.50")

        assert invoice.document_type == DocumentType.INVOICE
        assert invoice.amount_paid == ZERO
        assert invoice.balance_due == Decimal("1250.50")
        assert invoice.status == DocumentStatus.OPEN
        assert [e.action for e in invoice.activity_logs] == ["created"]
        assert documents.get_document(DocumentType.INVOICE, invoice.id) == invoice

    def test_create_draft(self, make_invoice):
        assert make_invoice("10.00", status=DocumentStatus.DRAFT).status == DocumentStatus.DRAFT

    def test_cannot_start_paid(self, make_invoice):
        with pytest.raises(InvalidTargetStateError):
            make_invoice("10.00", status=DocumentStatus.PAID)

    def test_negative_total_rejected(self, make_invoice):
        with pytest.raises(InvalidAmountError):
            make_invoice("-1.00")

    def test_create_source_numbers(self, make_source):
        first = make_source(SourceType.CREDIT_NOTE, "10.00")
        second = make_source(SourceType.CREDIT_NOTE, "20.00")
        vendor_credit = make_source(SourceType.VENDOR_CREDIT, "30.00")

        assert (first.number, second.number, vendor_credit.number) == (
            "CN-000001",
            "CN-000002",
            "VC-000001",
        )
        assert second.amount_remaining == Decimal("20.00")

    def test_source_needs_positive_amount(self, documents):
        with pytest.raises(InvalidAmountError):
            documents.create_source(SourceType.CREDIT_NOTE, SourceCreate(total_amount=Decimal("0")))

    def test_list_by_party(self, documents, make_invoice):
        mine = make_invoice("10.00")
        make_invoice("10.00", party_id=OTHER_PARTY_ID)

        listed = documents.list_documents(DocumentType.INVOICE, party_id=PARTY_ID)

        assert [d.id for d in listed] == [mine.id]
        assert len(documents.list_documents(DocumentType.INVOICE)) == 2

    def test_unknown_document(self, documents):
        with pytest.raises(NotFoundError):
            documents.get_document(DocumentType.BILL, "missing")

    def test_invoice_linked_to_sales_order(self, documents, make_invoice):
        order = documents.create_sales_order(SalesOrderCreate(number="SO-000001"))

        invoice = make_invoice("100.00", origin_type="sales_order", origin_id=order.id)

        stored = documents.get_sales_order(order.id)
        assert [s.invoice_id for s in stored.invoices] == [invoice.id]
        assert stored.payment_status == SalesOrderPaymentStatus.UNPAID

    def test_unknown_sales_order_rejected(self, documents, make_invoice):
        with pytest.raises(NotFoundError):
            make_invoice("100.00", origin_type="sales_order", origin_id="missing")
        assert documents.list_documents(DocumentType.INVOICE) == []


class TestDeleteDocument:
    def test_delete_reverses_settlements(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("500.00")
        credit = make_source(SourceType.CREDIT_NOTE, "200.00")
        settlements.apply_settlement(
            SourceType.CREDIT_NOTE,
            credit.id,
            [SettlementTarget(document_id=invoice.id, amount=Decimal("200.00"))],
        )
        payment = settlements.record_payment(
            DocumentType.INVOICE, invoice.id, Decimal("300.00")
        ).settlement_source

        assert documents.delete_document(DocumentType.INVOICE, invoice.id) is True

        with pytest.raises(NotFoundError):
            documents.get_document(DocumentType.INVOICE, invoice.id)
        restored_credit = documents.get_source(SourceType.CREDIT_NOTE, credit.id)
        assert restored_credit.amount_remaining == Decimal("200.00")
        assert restored_credit.applied_to == []
        restored_payment = documents.get_source(SourceType.PAYMENT_RECEIVED, payment.id)
        assert restored_payment.amount_remaining == Decimal("300.00")

    def test_delete_missing_returns_false(self, documents):
        assert documents.delete_document(DocumentType.BILL, "missing") is False

    def test_delete_detaches_from_sales_order(self, documents, make_invoice):
        order = documents.create_sales_order(SalesOrderCreate(number="SO-000001"))
        invoice = make_invoice("100.00", origin_type="sales_order", origin_id=order.id)

        documents.delete_document(DocumentType.INVOICE, invoice.id)

        assert documents.get_sales_order(order.id).invoices == []


class TestVoidDocument:
    def test_void_reverses_and_marks_void(
        self, settlements, documents, make_bill, make_source
    ):
        bill = make_bill("500.00")
        vendor_credit = make_source(SourceType.VENDOR_CREDIT, "100.00")
        settlements.apply_settlement(
            SourceType.VENDOR_CREDIT,
            vendor_credit.id,
            [SettlementTarget(document_id=bill.id, amount=Decimal("100.00"))],
        )

        voided = documents.void_document(DocumentType.BILL, bill.id)

        assert voided.status == DocumentStatus.VOID
        assert voided.settlements == []
        assert voided.amount_paid == ZERO
        source = documents.get_source(SourceType.VENDOR_CREDIT, vendor_credit.id)
        assert source.amount_remaining == Decimal("100.00")

    def test_void_is_idempotent(self, documents, make_invoice):
        invoice = make_invoice("100.00")
        documents.void_document(DocumentType.INVOICE, invoice.id)

        again = documents.void_document(DocumentType.INVOICE, invoice.id)

        assert again.status == DocumentStatus.VOID
        assert [e.action for e in again.activity_logs] == ["created", "status_changed"]
