"""Tests for PaymentLedger."""

from datetime import date
from uuid import uuid4

import pytest

from core.errors import (
    InvalidAmountError, InvalidStateError, NotFoundError, OverpaymentError, ValidationError,
)
from core.models import FullOnAcceptance, InvoiceStatus, derive_invoice_status

from tests.factories import PROJECT, event_names, line


class TestPostVoidScenario:
    """Partial payment, payoff, void and overpayment on a 543.75 invoice."""

    def test_full_walkthrough(self, ledger, scenario_invoice):
        assert scenario_invoice.total_cents == 54375

        after_first = ledger.post(scenario_invoice.id, 30000, payment_date=date(2025, 3, 5))
        assert after_first.status == InvoiceStatus.PARTIAL
        assert after_first.balance_due_cents == 24375

        after_second = ledger.post(scenario_invoice.id, 24375, payment_date=date(2025, 3, 10))
        assert after_second.status == InvoiceStatus.PAID
        assert after_second.balance_due_cents == 0

        second = ledger.list_for_invoice(scenario_invoice.id)[0]
        assert second.amount_cents == 24375

        after_void = ledger.void(second.id)
        assert after_void.status == InvoiceStatus.PARTIAL
        assert after_void.paid_amount_cents == 30000

        with pytest.raises(OverpaymentError):
            ledger.post(scenario_invoice.id, 24376)

        unchanged = ledger.store.get_invoice(scenario_invoice.id)
        assert unchanged.paid_amount_cents == 30000

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, ledger, scenario_invoice, amount):
        with pytest.raises(InvalidAmountError):
            ledger.post(scenario_invoice.id, amount)
        assert ledger.list_for_invoice(scenario_invoice.id) == []

    def test_zero_total_invoice_paid_without_payments(
        self, ledger, invoice_service, pay_term_service, make_estimate,
    ):
        estimate = make_estimate(line("Courtesy visit", "1", 0))
        [term] = pay_term_service.allocate(estimate.id, FullOnAcceptance())

        invoice = invoice_service.create_from_pay_terms(PROJECT, [term.id])

        assert invoice.status == InvoiceStatus.PAID
        assert ledger.list_for_invoice(invoice.id) == []


class TestPost:

    def test_exact_balance_pays_in_full(self, ledger, scenario_invoice, published):
        invoice = ledger.post(scenario_invoice.id, 54375)

        assert invoice.status == InvoiceStatus.PAID
        assert event_names(published) == ["PaymentPosted", "InvoicePaid"]

    def test_one_cent_short_is_partial(self, ledger, scenario_invoice, published):
        invoice = ledger.post(scenario_invoice.id, 54374)

        assert invoice.status == InvoiceStatus.PARTIAL
        assert invoice.balance_due_cents == 1
        assert event_names(published) == ["PaymentPosted"]

    def test_payment_fields_recorded(self, ledger, scenario_invoice):
        ledger.post(
            scenario_invoice.id, 1000,
            payment_date=date(2025, 3, 7), method="ACH", reference="TX-88", notes="Deposit",
        )
        [payment] = ledger.list_for_invoice(scenario_invoice.id)

        assert (payment.payment_date, payment.method, payment.reference, payment.notes) == (
            date(2025, 3, 7), "ACH", "TX-88", "Deposit",
        )

    def test_posting_to_draft_marks_it_sent(self, ledger, scenario_invoice):
        assert scenario_invoice.sent_at is None
        invoice = ledger.post(scenario_invoice.id, 100)
        assert invoice.sent_at is not None

    def test_post_to_paid_invoice_is_overpayment(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 54375)
        with pytest.raises(OverpaymentError) as exc_info:
            ledger.post(scenario_invoice.id, 1)
        assert exc_info.value.balance_due_cents == 0

    def test_cancelled_invoice_rejected(self, ledger, invoice_service, scenario_invoice):
        invoice_service.cancel(scenario_invoice.id)
        with pytest.raises(InvalidStateError):
            ledger.post(scenario_invoice.id, 100)

    def test_unknown_invoice(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.post(uuid4(), 100)

    @pytest.mark.parametrize("amount", [100.0, "100", True])
    def test_amount_must_be_int_cents(self, ledger, scenario_invoice, amount):
        with pytest.raises(TypeError):
            ledger.post(scenario_invoice.id, amount)

    def test_failed_post_leaves_no_payment(self, ledger, scenario_invoice, store, monkeypatch):
        def fail(invoice):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(store, "update_invoice", fail)

        with pytest.raises(RuntimeError):
            ledger.post(scenario_invoice.id, 100)

        monkeypatch.undo()
        assert ledger.list_for_invoice(scenario_invoice.id) == []
        assert store.get_invoice(scenario_invoice.id).paid_amount_cents == 0

    def test_audit_trail(self, ledger, scenario_invoice, audit):
        ledger.post(scenario_invoice.id, 100)

        latest = audit.get_entity_history("invoice", scenario_invoice.id)[0]
        assert latest["changes"]["paid_amount_cents"] == {"old": 0, "new": 100}
        assert latest["changes"]["status"] == {"old": "draft", "new": "partial"}


class TestVoid:

    def test_void_publishes(self, ledger, scenario_invoice, published):
        ledger.post(scenario_invoice.id, 500)
        [payment] = ledger.list_for_invoice(scenario_invoice.id)

        invoice = ledger.void(payment.id)

        assert invoice.paid_amount_cents == 0
        assert invoice.status == InvoiceStatus.SENT
        assert event_names(published)[-1] == "PaymentVoided"
        assert ledger.get_by_id(payment.id) is None

    def test_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.void(uuid4())


class TestAmend:

    def test_amount_checked_against_balance_plus_old_amount(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 30000)
        [payment] = ledger.list_for_invoice(scenario_invoice.id)

        invoice = ledger.amend(payment.id, amount_cents=54375)
        assert invoice.status == InvoiceStatus.PAID

    def test_amend_past_total_rejected(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 30000)
        [payment] = ledger.list_for_invoice(scenario_invoice.id)

        with pytest.raises(OverpaymentError):
            ledger.amend(payment.id, amount_cents=54376)

    def test_amend_non_amount_fields(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 1000, reference="1001")
        [payment] = ledger.list_for_invoice(scenario_invoice.id)

        invoice = ledger.amend(payment.id, reference="1002", method="Cash")

        amended = ledger.get_by_id(payment.id)
        assert (amended.reference, amended.method, amended.amount_cents) == ("1002", "Cash", 1000)
        assert invoice.paid_amount_cents == 1000

    def test_amend_zero_rejected(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 1000)
        [payment] = ledger.list_for_invoice(scenario_invoice.id)
        with pytest.raises(InvalidAmountError):
            ledger.amend(payment.id, amount_cents=0)


class TestLedgerConsistency:
    """Paid amount and status hold after every operation, accepted or not."""

    def _check(self, ledger, invoice_id):
        invoice = ledger.store.get_invoice(invoice_id)
        payments = ledger.list_for_invoice(invoice_id)

        assert 0 <= invoice.paid_amount_cents <= invoice.total_cents
        assert invoice.paid_amount_cents == sum(p.amount_cents for p in payments)
        assert invoice.status == derive_invoice_status(
            invoice.total_cents,
            invoice.paid_amount_cents,
            sent=invoice.sent_at is not None,
            cancelled=invoice.cancelled_at is not None,
        )
        return invoice

    def test_mixed_sequence(self, ledger, scenario_invoice):
        invoice_id = scenario_invoice.id
        self._check(ledger, invoice_id)

        def payment_ids():
            return [p.id for p in ledger.list_for_invoice(invoice_id)]

        steps = [
            (lambda: ledger.post(invoice_id, 10000, payment_date=date(2025, 3, 5)), None),
            (lambda: ledger.post(invoice_id, 20000, payment_date=date(2025, 3, 10)), None),
            (lambda: ledger.post(invoice_id, 24376), OverpaymentError),
            (lambda: ledger.post(invoice_id, 0), InvalidAmountError),
            (lambda: ledger.amend(payment_ids()[0], amount_cents=44376), OverpaymentError),
            (lambda: ledger.amend(payment_ids()[0], amount_cents=-5), InvalidAmountError),
            (lambda: ledger.amend(payment_ids()[0], amount_cents=44375), None),
            (lambda: ledger.void(payment_ids()[-1]), None),
            (lambda: ledger.post(invoice_id, 10000, payment_date=date(2025, 3, 15)), None),
            (lambda: ledger.void(uuid4()), NotFoundError),
            (lambda: ledger.void(payment_ids()[0]), None),
            (lambda: ledger.void(payment_ids()[0]), None),
        ]

        statuses = []
        for action, rejected in steps:
            before = ledger.store.get_invoice(invoice_id)
            if rejected is None:
                action()
            else:
                with pytest.raises(rejected):
                    action()
            after = self._check(ledger, invoice_id)
            if rejected is not None:
                assert after.paid_amount_cents == before.paid_amount_cents
            statuses.append(after.status)

        assert statuses[-1] == InvoiceStatus.DRAFT
        assert InvoiceStatus.PAID in statuses
        assert InvoiceStatus.PARTIAL in statuses


class TestSummarize:

    def test_summary_over_range(self, ledger, scenario_invoice):
        ledger.post(scenario_invoice.id, 1000, payment_date=date(2025, 3, 1))
        ledger.post(scenario_invoice.id, 2001, payment_date=date(2025, 3, 15))
        ledger.post(scenario_invoice.id, 5000, payment_date=date(2025, 4, 2))

        summary = ledger.summarize(date(2025, 3, 1), date(2025, 3, 31))

        assert summary.count == 2
        assert summary.total_cents == 3001
        assert summary.average_cents == 1501
        assert (summary.min_cents, summary.max_cents) == (1000, 2001)

    def test_empty_summary(self, ledger):
        summary = ledger.summarize()
        assert (summary.count, summary.total_cents, summary.average_cents) == (0, 0, 0)
        assert summary.min_cents is None

    def test_inverted_range_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.summarize(date(2025, 4, 1), date(2025, 3, 1))


class TestListForInvoice:

    def test_unknown_invoice(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.list_for_invoice(uuid4())
