"""Tests for the settlement engine."""

from datetime import date
from decimal import Decimal

import pytest

from settlement_ledger.core.exceptions import (
    InsufficientCreditError,
    InvalidAmountError,
    InvalidSourceStateError,
    InvalidTargetStateError,
    NotFoundError,
    OverApplicationError,
)
from settlement_ledger.core.money import ZERO
from settlement_ledger.schemas.document import DocumentStatus, DocumentType, SourceType
from settlement_ledger.schemas.settlement import CreditApplication, SettlementTarget
from settlement_ledger.schemas.source import SourceStatus
from settlement_ledger.services.payment_service import PaymentService
from settlement_ledger.services.settlement_service import SettlementService
from tests.conftest import OTHER_PARTY_ID


@pytest.fixture
def settlements(store, locks, synchronizer):
    return SettlementService(store, locks=locks, synchronizer=synchronizer)


def _target(document, amount):
    return SettlementTarget(document_id=document.id, amount=Decimal(amount))


class TestApplySettlement:
    def test_partial_application(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("1000.00")
        credit = make_source(SourceType.CREDIT_NOTE, "400.00")

        result = settlements.apply_settlement(
            SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "250.00")], date(2026, 2, 1)
        )

        assert result.total_applied == Decimal("250.00")
        assert result.source.amount_remaining == Decimal("150.00")
        assert result.source.status == SourceStatus.OPEN
        [doc] = result.documents
        assert doc.amount_paid == Decimal("250.00")
        assert doc.balance_due == Decimal("750.00")
        assert doc.status == DocumentStatus.PARTIALLY_PAID

        stored = documents.get_document(DocumentType.INVOICE, invoice.id)
        assert stored.balance_due == Decimal("750.00")
        [ref] = stored.settlements
        assert ref.source_id == credit.id
        assert ref.source_type == SourceType.CREDIT_NOTE
        assert ref.source_number == credit.number
        assert ref.applied_date == date(2026, 2, 1)

    def test_refs_are_mirrored_on_source(self, settlements, documents, make_invoice, make_source):
        first = make_invoice("100.00")
        second = make_invoice("200.00")
        credit = make_source(SourceType.CREDIT_NOTE, "300.00")

        settlements.apply_settlement(
            SourceType.CREDIT_NOTE,
            credit.id,
            [_target(first, "100.00"), _target(second, "150.00")],
        )

        source = documents.get_source(SourceType.CREDIT_NOTE, credit.id)
        mirrored = {ref.document_id: ref.amount_applied for ref in source.applied_to}
        assert mirrored == {first.id: Decimal("100.00"), second.id: Decimal("150.00")}
        assert source.amount_remaining == Decimal("50.00")

        # Conservation: what left the source is what the documents received
        paid = sum(
            (documents.get_document(DocumentType.INVOICE, d.id).amount_paid for d in (first, second)),
            ZERO,
        )
        assert paid == source.total_amount - source.amount_remaining

    def test_exhausted_source_is_closed(self, settlements, make_invoice, make_source):
        invoice = make_invoice("1000.00")
        credit = make_source(SourceType.CREDIT_NOTE, "200.00")

        result = settlements.apply_settlement(
            SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "200.00")]
        )

        assert result.source.amount_remaining == ZERO
        assert result.source.status == SourceStatus.CLOSED
        assert result.source.closed_by_exhaustion is True

        other = make_invoice("50.00")
        with pytest.raises(InsufficientCreditError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(other, "1.00")]
            )

    def test_batch_is_atomic(self, settlements, documents, make_invoice, make_source):
        invoice_a = make_invoice("1000.00")
        invoice_b = make_invoice("1000.00")
        credit = make_source(SourceType.CREDIT_NOTE, "20000.00")

        with pytest.raises(OverApplicationError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE,
                credit.id,
                [_target(invoice_a, "300.00"), _target(invoice_b, "9999.00")],
            )

        stored_a = documents.get_document(DocumentType.INVOICE, invoice_a.id)
        assert stored_a.amount_paid == ZERO
        assert stored_a.settlements == []
        assert stored_a.status == DocumentStatus.OPEN
        source = documents.get_source(SourceType.CREDIT_NOTE, credit.id)
        assert source.amount_remaining == Decimal("20000.00")
        assert source.applied_to == []

    def test_insufficient_credit_checked_across_batch(
        self, settlements, documents, make_invoice, make_source
    ):
        invoice_a = make_invoice("1000.00")
        invoice_b = make_invoice("1000.00")
        credit = make_source(SourceType.CREDIT_NOTE, "500.00")

        with pytest.raises(InsufficientCreditError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE,
                credit.id,
                [_target(invoice_a, "300.00"), _target(invoice_b, "300.00")],
            )

        assert documents.get_document(DocumentType.INVOICE, invoice_a.id).amount_paid == ZERO

    def test_over_application_aggregated_per_document(self, settlements, make_invoice, make_source):
        invoice = make_invoice("1000.00")
        credit = make_source(SourceType.CREDIT_NOTE, "5000.00")

        with pytest.raises(OverApplicationError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE,
                credit.id,
                [_target(invoice, "600.00"), _target(invoice, "600.00")],
            )

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, settlements, make_invoice, make_source, amount):
        invoice = make_invoice("100.00")
        credit = make_source(SourceType.CREDIT_NOTE, "100.00")

        with pytest.raises(InvalidAmountError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(invoice, amount)]
            )

    def test_empty_batch_rejected(self, settlements, make_source):
        credit = make_source(SourceType.CREDIT_NOTE, "100.00")
        with pytest.raises(InvalidAmountError):
            settlements.apply_settlement(SourceType.CREDIT_NOTE, credit.id, [])

    def test_void_target_rejected(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("100.00")
        documents.void_document(DocumentType.INVOICE, invoice.id)
        credit = make_source(SourceType.CREDIT_NOTE, "100.00")

        with pytest.raises(InvalidTargetStateError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "10.00")]
            )

    def test_paid_target_rejected(self, settlements, make_invoice, make_source):
        invoice = make_invoice("100.00")
        credit = make_source(SourceType.CREDIT_NOTE, "500.00")
        settlements.apply_settlement(SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "100.00")])

        with pytest.raises(InvalidTargetStateError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "1.00")]
            )

    def test_void_source_rejected(self, store, locks, settlements, make_invoice, make_source):
        invoice = make_invoice("100.00")
        credit = make_source(SourceType.CREDIT_NOTE, "100.00")
        PaymentService(store, locks=locks).void_payment(SourceType.CREDIT_NOTE, credit.id)

        with pytest.raises(InvalidSourceStateError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "10.00")]
            )

    def test_vendor_credit_cannot_settle_invoice(self, settlements, make_invoice, make_source):
        invoice = make_invoice("100.00")
        vendor_credit = make_source(SourceType.VENDOR_CREDIT, "100.00")

        # The invoice id is looked up among bills, where it does not exist
        with pytest.raises(NotFoundError):
            settlements.apply_settlement(
                SourceType.VENDOR_CREDIT, vendor_credit.id, [_target(invoice, "10.00")]
            )

    def test_other_party_rejected(self, settlements, make_invoice, make_source):
        invoice = make_invoice("100.00")
        credit = make_source(SourceType.CREDIT_NOTE, "100.00", party_id=OTHER_PARTY_ID)

        with pytest.raises(InvalidTargetStateError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "10.00")]
            )

    def test_unknown_source(self, settlements, make_invoice):
        invoice = make_invoice("100.00")
        with pytest.raises(NotFoundError):
            settlements.apply_settlement(
                SourceType.CREDIT_NOTE, "missing", [_target(invoice, "10.00")]
            )

    def test_vendor_credit_settles_bill(self, settlements, make_bill, make_source):
        bill = make_bill("400.00")
        vendor_credit = make_source(SourceType.VENDOR_CREDIT, "400.00")

        result = settlements.apply_settlement(
            SourceType.VENDOR_CREDIT, vendor_credit.id, [_target(bill, "400.00")]
        )

        assert result.documents[0].status == DocumentStatus.PAID
        assert result.source.status == SourceStatus.CLOSED

    def test_audit_entries_on_both_sides(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("100.00")
        credit = make_source(SourceType.CREDIT_NOTE, "100.00")

        settlements.apply_settlement(SourceType.CREDIT_NOTE, credit.id, [_target(invoice, "40.00")])

        doc = documents.get_document(DocumentType.INVOICE, invoice.id)
        source = documents.get_source(SourceType.CREDIT_NOTE, credit.id)
        assert [e.action for e in doc.activity_logs] == [
            "created",
            "settlement_applied",
            "status_changed",
        ]
        assert doc.activity_logs[1].description == f"40.00 applied from Credit note {credit.number}"
        assert doc.activity_logs[1].user == "system"
        assert source.activity_logs[-1].action == "settlement_applied"


class TestRecordPayment:
    def test_overpayment_split(self, settlements, documents, make_invoice):
        invoice = make_invoice("1000.00")

        result = settlements.record_payment(
            DocumentType.INVOICE, invoice.id, Decimal("1500.00"), date(2026, 3, 1), mode="cash"
        )

        assert result.amount_applied == Decimal("1000.00")
        assert result.unused_amount == Decimal("500.00")
        assert result.document.status == DocumentStatus.PAID
        assert result.document.balance_due == ZERO
        payment = result.settlement_source
        assert payment.source_type == SourceType.PAYMENT_RECEIVED
        assert payment.total_amount == Decimal("1500.00")
        assert payment.amount_remaining == Decimal("500.00")
        assert payment.status == SourceStatus.OPEN
        assert payment.party_id == invoice.party_id
        assert payment.mode == "cash"

        stored = documents.get_source(SourceType.PAYMENT_RECEIVED, payment.id)
        assert stored.amount_remaining == Decimal("500.00")

    def test_exact_payment_closes_payment(self, settlements, make_invoice):
        invoice = make_invoice("250.00")
        result = settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("250.00"))

        assert result.unused_amount == ZERO
        assert result.settlement_source.status == SourceStatus.CLOSED
        assert result.settlement_source.closed_by_exhaustion is True

    def test_bill_overpayment_split(self, settlements, make_bill):
        bill = make_bill("300.00")
        result = settlements.record_payment(DocumentType.BILL, bill.id, Decimal("450.00"))

        assert result.settlement_source.source_type == SourceType.PAYMENT_MADE
        assert result.document.status == DocumentStatus.PAID
        assert result.unused_amount == Decimal("150.00")

    def test_sequential_numbers(self, settlements, make_invoice):
        invoice = make_invoice("1000.00")
        first = settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("100.00"))
        second = settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("100.00"))

        assert first.settlement_source.number == "PR-000001"
        assert second.settlement_source.number == "PR-000002"

    def test_explicit_number_kept(self, settlements, make_invoice):
        invoice = make_invoice("1000.00")
        result = settlements.record_payment(
            DocumentType.INVOICE, invoice.id, Decimal("100.00"), number="RCPT-7"
        )
        assert result.settlement_source.number == "RCPT-7"

    def test_paid_invoice_rejected(self, settlements, make_invoice):
        invoice = make_invoice("100.00")
        settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("100.00"))

        with pytest.raises(InvalidTargetStateError):
            settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("10.00"))

    def test_zero_total_invoice_has_nothing_to_settle(self, settlements, make_invoice):
        invoice = make_invoice("0")
        with pytest.raises(OverApplicationError):
            settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("10.00"))

    def test_non_positive_payment_rejected(self, settlements, make_invoice):
        invoice = make_invoice("100.00")
        with pytest.raises(InvalidAmountError):
            settlements.record_payment(DocumentType.INVOICE, invoice.id, Decimal("0"))


class TestApplyCredits:
    def test_applies_several_sources(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("500.00")
        credit = make_source(SourceType.CREDIT_NOTE, "300.00")
        overpaid = make_invoice("100.00")
        excess = settlements.record_payment(
            DocumentType.INVOICE, overpaid.id, Decimal("400.00")
        ).settlement_source

        result = settlements.apply_credits(
            DocumentType.INVOICE,
            invoice.id,
            [
                CreditApplication(
                    source_id=credit.id,
                    source_type=SourceType.CREDIT_NOTE,
                    amount_to_apply=Decimal("300.00"),
                ),
                CreditApplication(
                    source_id=excess.id,
                    source_type=SourceType.PAYMENT_RECEIVED,
                    amount_to_apply=Decimal("200.00"),
                ),
            ],
        )

        assert result.total_applied == Decimal("500.00")
        assert result.document.status == DocumentStatus.PAID
        remaining = {s.id: s.amount_remaining for s in result.updated_sources}
        assert remaining == {credit.id: ZERO, excess.id: Decimal("100.00")}

    def test_all_or_nothing(self, settlements, documents, make_invoice, make_source):
        invoice = make_invoice("500.00")
        good = make_source(SourceType.CREDIT_NOTE, "300.00")
        small = make_source(SourceType.CREDIT_NOTE, "50.00")

        with pytest.raises(InsufficientCreditError):
            settlements.apply_credits(
                DocumentType.INVOICE,
                invoice.id,
                [
                    CreditApplication(
                        source_id=good.id,
                        source_type=SourceType.CREDIT_NOTE,
                        amount_to_apply=Decimal("300.00"),
                    ),
                    CreditApplication(
                        source_id=small.id,
                        source_type=SourceType.CREDIT_NOTE,
                        amount_to_apply=Decimal("100.00"),
                    ),
                ],
            )

        assert documents.get_document(DocumentType.INVOICE, invoice.id).amount_paid == ZERO
        assert documents.get_source(SourceType.CREDIT_NOTE, good.id).amount_remaining == Decimal(
            "300.00"
        )

    def test_source_kind_must_match_document(self, settlements, make_invoice, make_source):
        invoice = make_invoice("500.00")
        vendor_credit = make_source(SourceType.VENDOR_CREDIT, "100.00")

        with pytest.raises(InvalidTargetStateError):
            settlements.apply_credits(
                DocumentType.INVOICE,
                invoice.id,
                [
                    CreditApplication(
                        source_id=vendor_credit.id,
                        source_type=SourceType.VENDOR_CREDIT,
                        amount_to_apply=Decimal("10.00"),
                    )
                ],
            )
