"""Tests for EstimateService."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from core.errors import InvalidStateError, NotFoundError, ReferentialIntegrityError, ValidationError
from core.models import EstimateCreate, EstimateStatus, EstimateUpdate, InvoiceStatus

from tests.factories import ISSUED, PROJECT, event_names, line


class TestCreate:
    """Estimate creation."""

    def test_first_estimate_gets_floor_number(self, make_estimate):
        estimate = make_estimate()
        assert estimate.estimate_number == "EST-1150"
        assert estimate.status == EstimateStatus.DRAFT

    def test_numbers_increase(self, make_estimate):
        numbers = [make_estimate().estimate_number for _ in range(3)]
        assert numbers == ["EST-1150", "EST-1151", "EST-1152"]

    def test_scenario_totals(self, scenario_estimate):
        assert scenario_estimate.subtotal_cents == 50000
        assert scenario_estimate.tax_amount_cents == 4375
        assert scenario_estimate.total_cents == 54375

    def test_no_line_items_rejected(self, estimate_service):
        with pytest.raises(ValidationError):
            estimate_service.create(EstimateCreate(project_ref=PROJECT))

    def test_tax_rate_defaults_from_config(self, estimate_service, config):
        estimate = estimate_service.create(EstimateCreate(
            project_ref=PROJECT, date_issued=ISSUED, line_items=[line()],
        ))
        assert estimate.tax_rate == config.default_tax_rate

    def test_explicit_zero_tax_kept(self, make_estimate):
        estimate = make_estimate(tax_rate=Decimal(0))
        assert estimate.tax_amount_cents == 0

    def test_valid_until_defaults_from_issue_date(self, make_estimate, config):
        estimate = make_estimate()
        assert estimate.valid_until == ISSUED + timedelta(days=config.estimate_valid_days)

    def test_exclusions_stored_ahead_of_notes(self, make_estimate):
        estimate = make_estimate(exclusions="Permit fees excluded", notes="Start Monday")
        assert estimate.notes == "Permit fees excluded\n\nStart Monday"

    def test_line_notes_join_description(self, make_estimate):
        estimate = make_estimate(line("Demo", notes="haul away"))
        assert estimate.line_items[0].description == "Demo: haul away"

    def test_audited(self, make_estimate, audit):
        estimate = make_estimate()
        history = audit.get_entity_history("estimate", estimate.id)
        assert [h["action"] for h in history] == ["create"]


class TestUpdate:
    """Editing estimates."""

    def test_replaces_line_items_and_totals(self, estimate_service, scenario_estimate):
        updated = estimate_service.update(
            scenario_estimate.id,
            EstimateUpdate(line_items=[line("Paint", "2", 2500)]),
        )
        assert updated.subtotal_cents == 5000
        assert len(updated.line_items) == 1
        assert updated.tax_rate == scenario_estimate.tax_rate

    def test_notes_untouched_unless_given(self, estimate_service, make_estimate):
        estimate = make_estimate(notes="Keep me")
        updated = estimate_service.update(estimate.id, EstimateUpdate(line_items=[line()]))
        assert updated.notes == "Keep me"

    def test_approved_estimate_is_frozen(self, estimate_service, scenario_invoice, scenario_estimate):
        with pytest.raises(InvalidStateError):
            estimate_service.update(scenario_estimate.id, EstimateUpdate(line_items=[line()]))

    def test_pending_estimate_editable(self, estimate_service, scenario_estimate):
        estimate_service.submit(scenario_estimate.id)
        updated = estimate_service.update(
            scenario_estimate.id,
            EstimateUpdate(line_items=[line()], tax_rate=Decimal(0)),
        )
        assert updated.total_cents == 10000

    def test_missing_raises_not_found(self, estimate_service):
        with pytest.raises(NotFoundError):
            estimate_service.update(uuid4(), EstimateUpdate(line_items=[line()]))

    def test_empty_lines_rejected(self, estimate_service, scenario_estimate):
        with pytest.raises(ValidationError):
            estimate_service.update(scenario_estimate.id, EstimateUpdate(line_items=[]))

    def test_audit_records_changed_total(self, estimate_service, scenario_estimate, audit):
        estimate_service.update(scenario_estimate.id, EstimateUpdate(line_items=[line()]))
        latest = audit.get_entity_history("estimate", scenario_estimate.id)[0]
        assert latest["action"] == "update"
        assert latest["changes"]["total_cents"] == {"old": 54375, "new": 10875}


class TestTransitions:
    """Submit and reject."""

    def test_submit_then_reject(self, estimate_service, scenario_estimate):
        assert estimate_service.submit(scenario_estimate.id).status == EstimateStatus.PENDING
        assert estimate_service.reject(scenario_estimate.id).status == EstimateStatus.REJECTED

    def test_reject_requires_pending(self, estimate_service, scenario_estimate):
        with pytest.raises(InvalidStateError):
            estimate_service.reject(scenario_estimate.id)

    def test_submit_twice_rejected(self, estimate_service, scenario_estimate):
        estimate_service.submit(scenario_estimate.id)
        with pytest.raises(InvalidStateError):
            estimate_service.submit(scenario_estimate.id)


class TestConvertToInvoice:
    """Estimate approval by conversion."""

    def test_invoice_copies_lines_tax_and_notes(self, estimate_service, make_estimate):
        estimate = make_estimate(line("Drywall sheets", "10", 5000), notes="Net 30")
        invoice = estimate_service.convert_to_invoice(estimate.id, date_issued=ISSUED)

        assert invoice.invoice_number == "INV-1150"
        assert invoice.estimate_id == estimate.id
        assert invoice.project_ref == estimate.project_ref
        assert invoice.total_cents == estimate.total_cents == 54375
        assert invoice.tax_rate == estimate.tax_rate
        assert invoice.notes == "Net 30"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.paid_amount_cents == 0

    def test_estimate_becomes_approved(self, estimate_service, scenario_invoice, scenario_estimate):
        assert estimate_service.require(scenario_estimate.id).status == EstimateStatus.APPROVED

    def test_due_date_defaults_to_payment_terms(self, scenario_invoice, config):
        assert scenario_invoice.due_date == ISSUED + timedelta(days=config.payment_terms_days)

    def test_explicit_due_date(self, estimate_service, scenario_estimate):
        invoice = estimate_service.convert_to_invoice(
            scenario_estimate.id, date_issued=ISSUED, due_date=date(2025, 3, 15),
        )
        assert invoice.due_date == date(2025, 3, 15)

    def test_pending_estimate_converts(self, estimate_service, scenario_estimate):
        estimate_service.submit(scenario_estimate.id)
        invoice = estimate_service.convert_to_invoice(scenario_estimate.id)
        assert invoice.estimate_id == scenario_estimate.id

    def test_second_conversion_rejected(self, estimate_service, scenario_invoice, scenario_estimate):
        with pytest.raises(InvalidStateError):
            estimate_service.convert_to_invoice(scenario_estimate.id)

    def test_rejected_estimate_cannot_convert(self, estimate_service, scenario_estimate, invoice_service):
        estimate_service.submit(scenario_estimate.id)
        estimate_service.reject(scenario_estimate.id)

        with pytest.raises(InvalidStateError):
            estimate_service.convert_to_invoice(scenario_estimate.id)
        assert invoice_service.list_for_estimate(scenario_estimate.id) == []

    def test_missing_estimate(self, estimate_service):
        with pytest.raises(NotFoundError):
            estimate_service.convert_to_invoice(uuid4())

    def test_invoice_lines_do_not_follow_later_changes(self, estimate_service, invoice_service, scenario_invoice):
        """Line items are copied, so the invoice keeps its own set."""
        stored = invoice_service.require(scenario_invoice.id)
        assert [i.description for i in stored.line_items] == ["Drywall sheets"]
        assert stored.line_items.subtotal_cents == 50000

    def test_publishes_estimate_approved(self, estimate_service, scenario_estimate, published):
        invoice = estimate_service.convert_to_invoice(scenario_estimate.id)

        assert event_names(published) == ["EstimateApproved"]
        assert published[0].invoice.id == invoice.id
        assert published[0].estimate.status == EstimateStatus.APPROVED

    def test_zero_total_estimate_yields_paid_invoice(self, estimate_service, make_estimate, published):
        estimate = make_estimate(line("Warranty visit", "1", 0))
        invoice = estimate_service.convert_to_invoice(estimate.id)

        assert invoice.status == InvoiceStatus.PAID
        assert event_names(published) == ["EstimateApproved", "InvoicePaid"]

    def test_failed_conversion_leaves_nothing_behind(self, estimate_service, invoice_service, scenario_estimate, store, monkeypatch):
        def fail(estimate):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "update_estimate", fail)

        with pytest.raises(RuntimeError):
            estimate_service.convert_to_invoice(scenario_estimate.id)

        assert invoice_service.list_for_project(PROJECT) == []
        assert estimate_service.require(scenario_estimate.id).status == EstimateStatus.DRAFT


class TestDelete:

    def test_delete_draft(self, estimate_service, scenario_estimate):
        estimate_service.delete(scenario_estimate.id)
        assert estimate_service.get_by_id(scenario_estimate.id) is None

    def test_delete_blocked_by_invoice(self, estimate_service, scenario_invoice, scenario_estimate):
        with pytest.raises(ReferentialIntegrityError):
            estimate_service.delete(scenario_estimate.id)

    def test_delete_missing(self, estimate_service):
        with pytest.raises(NotFoundError):
            estimate_service.delete(uuid4())


class TestListing:

    def test_list_for_project(self, estimate_service, make_estimate):
        mine = make_estimate()
        make_estimate(project_ref="PRJ-999")
        assert [e.id for e in estimate_service.list_for_project(PROJECT)] == [mine.id]
