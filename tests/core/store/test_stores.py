"""
Contract tests for BillingStore implementations.

Every test runs against the in-memory store and, when DATABASE_URL is set,
against PostgreSQL.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from core.errors import ReferentialIntegrityError, ValidationError
from core.models import (
    Contract, ContractStatus, Estimate, EstimateStatus, Invoice, LineItem, LineItemSet, Payment, PayTerm,
    PayTermKind, PayTermStatus,
)
from core.store.base import DocumentKind
from core.store.memory import InMemoryBillingStore
from utils.timezone import now_utc


@pytest.fixture(params=["memory", "postgres"])
def billing_store(request):
    if request.param == "memory":
        return InMemoryBillingStore()
    return request.getfixturevalue("pg_store")


def _lines(*rates) -> LineItemSet:
    return LineItemSet([
        LineItem(description=f"Line {i}", quantity=Decimal("2.5"), unit_rate_cents=rate, sort_order=i)
        for i, rate in enumerate(rates)
    ])


def _estimate(number="EST-1150", project_ref="PRJ-1", created_offset=0) -> Estimate:
    now = now_utc() + timedelta(seconds=created_offset)
    return Estimate(
        id=uuid4(),
        estimate_number=number,
        project_ref=project_ref,
        date_issued=date(2025, 1, 1),
        valid_until=date(2025, 1, 31),
        tax_rate=Decimal("0.0875"),
        line_items=_lines(1000, 3333),
        status=EstimateStatus.DRAFT,
        notes="Exclusions\n\nNotes",
        created_at=now,
        updated_at=now,
    )


def _invoice(number="INV-1150", estimate_id=None, project_ref="PRJ-1", created_offset=0) -> Invoice:
    now = now_utc() + timedelta(seconds=created_offset)
    return Invoice(
        id=uuid4(),
        invoice_number=number,
        project_ref=project_ref,
        estimate_id=estimate_id,
        pay_term_ids=[],
        date_issued=date(2025, 1, 1),
        due_date=date(2025, 1, 31),
        tax_rate=Decimal("0.0875"),
        line_items=_lines(5000),
        paid_amount_cents=0,
        notes=None,
        created_at=now,
        updated_at=now,
    )


def _payment(invoice_id, amount=100, payment_date=date(2025, 1, 10)) -> Payment:
    now = now_utc()
    return Payment(
        id=uuid4(), invoice_id=invoice_id, amount_cents=amount, payment_date=payment_date,
        method="Check", reference="1001", notes=None, created_at=now, updated_at=now,
    )


def _pay_term(estimate_id, project_ref="PRJ-1", due_date=None, status=PayTermStatus.PENDING) -> PayTerm:
    now = now_utc()
    return PayTerm(
        id=uuid4(), project_ref=project_ref, estimate_id=estimate_id,
        kind=PayTermKind.PERCENTAGE, label="Due now", percentage=Decimal(100),
        amount_cents=1000, due_trigger="Due Now", description=None,
        due_date=due_date, status=status, created_at=now, updated_at=now,
    )


def _contract(number="CON-0001", project_ref="PRJ-1", created_offset=0) -> Contract:
    now = now_utc() + timedelta(seconds=created_offset)
    return Contract(
        id=uuid4(), contract_number=number, project_ref=project_ref,
        contract_type="Design Contract", amount_cents=250000, status=ContractStatus.DRAFT,
        notes=None, created_at=now, updated_at=now,
    )


class TestEstimates:

    def test_round_trip_keeps_line_order_and_totals(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)

        loaded = billing_store.get_estimate(estimate.id)

        assert [i.description for i in loaded.line_items] == ["Line 0", "Line 1"]
        assert loaded.total_cents == estimate.total_cents
        assert loaded.notes == estimate.notes

    def test_update_replaces_line_items(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)

        billing_store.update_estimate(estimate.revise(line_items=_lines(700)))

        loaded = billing_store.get_estimate(estimate.id)
        assert len(loaded.line_items) == 1
        assert loaded.subtotal_cents == 1750

    def test_duplicate_number_rejected(self, billing_store):
        billing_store.insert_estimate(_estimate("EST-1150"))
        with pytest.raises(ValidationError):
            billing_store.insert_estimate(_estimate("EST-1150"))

    def test_list_filters_by_project_newest_first(self, billing_store):
        older = _estimate("EST-1150", created_offset=-10)
        newer = _estimate("EST-1151")
        other = _estimate("EST-1152", project_ref="PRJ-2")
        for e in (older, newer, other):
            billing_store.insert_estimate(e)

        listed = billing_store.list_estimates(project_ref="PRJ-1")
        assert [e.id for e in listed] == [newer.id, older.id]

    def test_delete_blocked_while_invoiced(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        billing_store.insert_invoice(_invoice(estimate_id=estimate.id))

        with pytest.raises(ReferentialIntegrityError):
            billing_store.delete_estimate(estimate.id)

    def test_delete_removes_pay_terms(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        term = _pay_term(estimate.id)
        billing_store.insert_pay_term(term)

        billing_store.delete_estimate(estimate.id)

        assert billing_store.get_estimate(estimate.id) is None
        assert billing_store.get_pay_term(term.id) is None

    def test_missing_returns_none(self, billing_store):
        assert billing_store.get_estimate(uuid4()) is None


class TestInvoices:

    def test_round_trip_keeps_paid_amount_and_markers(self, billing_store):
        invoice = _invoice()
        billing_store.insert_invoice(invoice)
        sent = invoice.revise(paid_amount_cents=500, sent_at=now_utc())
        billing_store.update_invoice(sent)

        loaded = billing_store.get_invoice(invoice.id)

        assert loaded.paid_amount_cents == 500
        assert loaded.status == sent.status
        assert loaded.balance_due_cents == sent.balance_due_cents

    def test_pay_term_ids_round_trip(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        term_ids = [uuid4(), uuid4()]
        invoice = _invoice(estimate_id=estimate.id).revise(pay_term_ids=term_ids)
        billing_store.insert_invoice(invoice)

        assert billing_store.get_invoice(invoice.id).pay_term_ids == term_ids

    def test_unknown_estimate_rejected(self, billing_store):
        with pytest.raises(ReferentialIntegrityError):
            billing_store.insert_invoice(_invoice(estimate_id=uuid4()))

    def test_delete_blocked_while_payments_exist(self, billing_store):
        invoice = _invoice()
        billing_store.insert_invoice(invoice)
        billing_store.insert_payment(_payment(invoice.id))

        with pytest.raises(ReferentialIntegrityError):
            billing_store.delete_invoice(invoice.id)

    def test_list_by_estimate(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        linked = _invoice("INV-1150", estimate_id=estimate.id)
        billing_store.insert_invoice(linked)
        billing_store.insert_invoice(_invoice("INV-1151"))

        assert [i.id for i in billing_store.list_invoices(estimate_id=estimate.id)] == [linked.id]

    def test_highest_number_suffix(self, billing_store):
        billing_store.insert_invoice(_invoice("INV-1150"))
        billing_store.insert_invoice(_invoice("INV-1187"))
        billing_store.insert_invoice(_invoice("INV-X9"))

        assert billing_store.highest_number_suffix(DocumentKind.INVOICE, "INV") == 1187
        assert billing_store.highest_number_suffix(DocumentKind.ESTIMATE, "EST") is None

    def test_prefix_matched_literally(self, billing_store):
        billing_store.insert_invoice(_invoice("A.B-0007"))
        billing_store.insert_invoice(_invoice("AXB-0099"))

        assert billing_store.highest_number_suffix(DocumentKind.INVOICE, "A.B") == 7


class TestPayments:

    def test_list_by_invoice_and_date_range(self, billing_store):
        invoice = _invoice()
        billing_store.insert_invoice(invoice)
        early = _payment(invoice.id, payment_date=date(2025, 1, 5))
        late = _payment(invoice.id, payment_date=date(2025, 2, 5))
        billing_store.insert_payment(early)
        billing_store.insert_payment(late)

        assert [p.id for p in billing_store.list_payments(invoice_id=invoice.id)] == [late.id, early.id]
        assert [p.id for p in billing_store.list_payments(end=date(2025, 1, 31))] == [early.id]

    def test_payment_requires_invoice(self, billing_store):
        with pytest.raises(ReferentialIntegrityError):
            billing_store.insert_payment(_payment(uuid4()))

    def test_update_and_delete(self, billing_store):
        invoice = _invoice()
        billing_store.insert_invoice(invoice)
        payment = _payment(invoice.id)
        billing_store.insert_payment(payment)

        billing_store.update_payment(payment.model_copy(update={"amount_cents": 250}))
        assert billing_store.get_payment(payment.id).amount_cents == 250

        billing_store.delete_payment(payment.id)
        assert billing_store.get_payment(payment.id) is None


class TestPayTerms:

    def test_ordered_by_due_date_nulls_last(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        undated = _pay_term(estimate.id)
        dated = _pay_term(estimate.id, due_date=date(2025, 2, 1))
        billing_store.insert_pay_term(undated)
        billing_store.insert_pay_term(dated)

        listed = billing_store.list_pay_terms(estimate_id=estimate.id)
        assert [t.id for t in listed] == [dated.id, undated.id]

    def test_update_status(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        term = _pay_term(estimate.id)
        billing_store.insert_pay_term(term)

        billing_store.update_pay_term(term.model_copy(update={
            "status": PayTermStatus.PAID, "paid_on": date(2025, 3, 1),
        }))

        loaded = billing_store.get_pay_term(term.id)
        assert loaded.status == PayTermStatus.PAID
        assert loaded.paid_on == date(2025, 3, 1)

    def test_update_edits_amount_and_schedule(self, billing_store):
        estimate = _estimate()
        billing_store.insert_estimate(estimate)
        term = _pay_term(estimate.id)
        billing_store.insert_pay_term(term)

        billing_store.update_pay_term(term.model_copy(update={
            "kind": PayTermKind.FIXED_AMOUNT, "percentage": None, "amount_cents": 4200,
            "label": "Deposit", "due_trigger": "Milestone", "description": "Revised",
            "due_date": date(2025, 4, 1),
        }))

        loaded = billing_store.get_pay_term(term.id)
        assert (loaded.kind, loaded.percentage, loaded.amount_cents) == (PayTermKind.FIXED_AMOUNT, None, 4200)
        assert (loaded.label, loaded.due_trigger, loaded.description) == ("Deposit", "Milestone", "Revised")
        assert loaded.due_date == date(2025, 4, 1)


class TestContracts:

    def test_round_trip(self, billing_store):
        contract = _contract()
        billing_store.insert_contract(contract)

        loaded = billing_store.get_contract(contract.id)

        assert loaded == contract

    def test_duplicate_number_rejected(self, billing_store):
        billing_store.insert_contract(_contract("CON-0001"))
        with pytest.raises(ValidationError):
            billing_store.insert_contract(_contract("CON-0001"))

    def test_update_signature(self, billing_store):
        contract = _contract()
        billing_store.insert_contract(contract)

        billing_store.update_contract(contract.model_copy(update={
            "status": ContractStatus.SIGNED, "signed_on": date(2025, 3, 3), "signed_by": "Dana Reyes",
        }))

        loaded = billing_store.get_contract(contract.id)
        assert loaded.status == ContractStatus.SIGNED
        assert (loaded.signed_on, loaded.signed_by) == (date(2025, 3, 3), "Dana Reyes")

    def test_list_filters_by_project_newest_first(self, billing_store):
        older = _contract("CON-0001", created_offset=-10)
        newer = _contract("CON-0002")
        other = _contract("CON-0003", project_ref="PRJ-2")
        for c in (older, newer, other):
            billing_store.insert_contract(c)

        assert [c.id for c in billing_store.list_contracts(project_ref="PRJ-1")] == [newer.id, older.id]
        assert len(billing_store.list_contracts()) == 3

    def test_delete(self, billing_store):
        contract = _contract()
        billing_store.insert_contract(contract)

        billing_store.delete_contract(contract.id)

        assert billing_store.get_contract(contract.id) is None

    def test_highest_number_suffix(self, billing_store):
        billing_store.insert_contract(_contract("CON-0004"))
        billing_store.insert_contract(_contract("CON-0012"))
        billing_store.insert_invoice(_invoice("CON-0099"))

        assert billing_store.highest_number_suffix(DocumentKind.CONTRACT, "CON") == 12

    def test_rollback_discards_contract(self, billing_store):
        contract = _contract()

        with pytest.raises(RuntimeError):
            with billing_store.transaction():
                billing_store.insert_contract(contract)
                raise RuntimeError("boom")

        assert billing_store.get_contract(contract.id) is None


class TestTransactions:

    def test_rollback_discards_all_writes(self, billing_store):
        estimate = _estimate()

        with pytest.raises(RuntimeError):
            with billing_store.transaction():
                billing_store.insert_estimate(estimate)
                billing_store.insert_invoice(_invoice(estimate_id=estimate.id))
                raise RuntimeError("boom")

        assert billing_store.get_estimate(estimate.id) is None
        assert billing_store.list_invoices() == []

    def test_nested_transactions_commit_together(self, billing_store):
        estimate = _estimate()

        with billing_store.transaction():
            with billing_store.transaction():
                billing_store.insert_estimate(estimate)
            billing_store.insert_invoice(_invoice(estimate_id=estimate.id))

        assert billing_store.get_estimate(estimate.id) is not None
        assert len(billing_store.list_invoices()) == 1


class TestAuditEntries:

    def test_newest_first_per_entity(self, billing_store):
        entity_id = uuid4()
        for i, action in enumerate(("create", "update")):
            billing_store.insert_audit_entry({
                "id": uuid4(),
                "entity_type": "invoice",
                "entity_id": entity_id,
                "action": action,
                "changes": {"step": i},
                "created_at": now_utc() + timedelta(seconds=i),
            })

        entries = billing_store.list_audit_entries("invoice", entity_id)
        assert [e["action"] for e in entries] == ["update", "create"]
        assert entries[0]["changes"] == {"step": 1}
