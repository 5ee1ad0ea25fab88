"""
Estimate service.

An estimate moves draft -> pending -> rejected, or from draft/pending to
approved by being converted into an invoice. Approval is one-way: approved
estimates are frozen, and their invoice carries a copy of the line items.
"""

import logging
from datetime import date, timedelta
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import EstimateApproved, InvoicePaid
from core.models import Estimate, EstimateCreate, EstimateStatus, EstimateUpdate, Invoice, LineItemSet
from core.models.estimate import combine_notes
from core.numbering import DocumentNumberSequencer
from core.services.invoice_service import InvoiceService
from core.store.base import BillingStore, DocumentKind
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

CONVERTIBLE_STATUSES = (EstimateStatus.DRAFT, EstimateStatus.PENDING)


class EstimateService:
    """Service for estimate operations."""

    def __init__(
        self,
        store: BillingStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig,
        invoices: InvoiceService,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.invoices = invoices
        self.numbers = DocumentNumberSequencer(store)

    def create(self, data: EstimateCreate) -> Estimate:
        """
        Create a draft estimate.

        Args:
            data: Estimate creation data. tax_rate None uses the configured
                default; exclusions are placed ahead of notes.

        Returns:
            Created estimate in DRAFT status

        Raises:
            ValidationError: If no line items are given
        """
        if not data.line_items:
            raise ValidationError("An estimate needs at least one line item")

        issued = data.date_issued or today_utc()
        now = now_utc()

        with self.store.transaction():
            estimate = Estimate(
                id=uuid4(),
                estimate_number=self.numbers.next(
                    DocumentKind.ESTIMATE,
                    self.config.estimate_prefix,
                    self.config.estimate_number_floor,
                ),
                project_ref=data.project_ref,
                date_issued=issued,
                valid_until=data.valid_until or issued + timedelta(days=self.config.estimate_valid_days),
                tax_rate=self.config.default_tax_rate if data.tax_rate is None else data.tax_rate,
                line_items=LineItemSet.from_inputs(data.line_items),
                status=EstimateStatus.DRAFT,
                notes=combine_notes(data.exclusions, data.notes),
                created_at=now,
                updated_at=now,
            )
            self.store.insert_estimate(estimate)

            self.audit.log_change(
                entity_type="estimate",
                entity_id=estimate.id,
                action=AuditAction.CREATE,
                changes={"created": estimate.model_dump(mode="json")}
            )

        logger.info("Created estimate %s for project %s", estimate.estimate_number, data.project_ref)
        return estimate

    def get_by_id(self, estimate_id: UUID) -> Estimate | None:
        return self.store.get_estimate(estimate_id)

    def require(self, estimate_id: UUID) -> Estimate:
        """Get estimate by ID, raising NotFoundError if missing."""
        estimate = self.store.get_estimate(estimate_id)
        if estimate is None:
            raise NotFoundError("estimate", estimate_id)
        return estimate

    def update(self, estimate_id: UUID, data: EstimateUpdate) -> Estimate:
        """
        Replace an estimate's line items and any supplied header fields.

        Notes are rewritten only when notes or exclusions are supplied.

        Raises:
            NotFoundError: If estimate not found
            InvalidStateError: If the estimate is approved
            ValidationError: If no line items are given
        """
        if not data.line_items:
            raise ValidationError("An estimate needs at least one line item")

        with self.store.transaction():
            current = self.require(estimate_id)
            if not current.is_editable:
                raise InvalidStateError(f"Estimate {current.estimate_number} is approved and cannot be edited")

            changes = {
                "line_items": LineItemSet.from_inputs(data.line_items),
                "updated_at": now_utc(),
            }
            for field in ("project_ref", "date_issued", "valid_until", "tax_rate"):
                value = getattr(data, field)
                if value is not None:
                    changes[field] = value
            if data.notes is not None or data.exclusions is not None:
                changes["notes"] = combine_notes(data.exclusions, data.notes)

            updated = current.revise(**changes)
            self.store.update_estimate(updated)

            self.audit.log_change(
                entity_type="estimate",
                entity_id=estimate_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    current.model_dump(mode="json"),
                    updated.model_dump(mode="json")
                )
            )

        return updated

    def _transition(self, estimate_id: UUID, source: EstimateStatus, target: EstimateStatus) -> Estimate:
        with self.store.transaction():
            current = self.require(estimate_id)
            if current.status != source:
                raise InvalidStateError(
                    f"Estimate {current.estimate_number} is {current.status.value}; "
                    f"only {source.value} estimates can become {target.value}"
                )

            updated = current.revise(status=target, updated_at=now_utc())
            self.store.update_estimate(updated)

            self.audit.log_change(
                entity_type="estimate",
                entity_id=estimate_id,
                action=AuditAction.UPDATE,
                changes={"status": {"old": source.value, "new": target.value}}
            )

        return updated

    def submit(self, estimate_id: UUID) -> Estimate:
        """Send a draft estimate to the client for review (draft -> pending)."""
        return self._transition(estimate_id, EstimateStatus.DRAFT, EstimateStatus.PENDING)

    def reject(self, estimate_id: UUID) -> Estimate:
        """Record the client's rejection (pending -> rejected)."""
        return self._transition(estimate_id, EstimateStatus.PENDING, EstimateStatus.REJECTED)

    def delete(self, estimate_id: UUID) -> None:
        """
        Delete an estimate and its pay terms.

        Raises:
            NotFoundError: If estimate not found
            ReferentialIntegrityError: If any invoice references the estimate
        """
        with self.store.transaction():
            current = self.require(estimate_id)
            self.store.delete_estimate(estimate_id)

            self.audit.log_change(
                entity_type="estimate",
                entity_id=estimate_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")}
            )

        logger.info("Deleted estimate %s", current.estimate_number)

    def list_for_project(self, project_ref: str) -> list[Estimate]:
        """Estimates for a project, newest first."""
        return self.store.list_estimates(project_ref=project_ref)

    def convert_to_invoice(
        self,
        estimate_id: UUID,
        date_issued: date | None = None,
        due_date: date | None = None,
    ) -> Invoice:
        """
        Create a draft invoice from an estimate and approve the estimate.

        The invoice gets a copy of the line items, the estimate's tax rate
        and its notes. Both writes commit together.

        Args:
            estimate_id: Estimate to convert
            date_issued: Invoice issue date (defaults to today)
            due_date: Invoice due date (defaults to issue date + payment terms)

        Returns:
            The new invoice

        Raises:
            NotFoundError: If estimate not found
            InvalidStateError: If the estimate is already approved or rejected
        """
        with self.store.transaction():
            estimate = self.require(estimate_id)
            if estimate.status not in CONVERTIBLE_STATUSES:
                raise InvalidStateError(
                    f"Estimate {estimate.estimate_number} is {estimate.status.value} and cannot be converted"
                )

            invoice = self.invoices.create_from_line_items(
                project_ref=estimate.project_ref,
                line_items=estimate.line_items.copy_for_document(),
                tax_rate=estimate.tax_rate,
                date_issued=date_issued,
                due_date=due_date,
                notes=estimate.notes,
                estimate_id=estimate.id,
            )

            approved = estimate.revise(status=EstimateStatus.APPROVED, updated_at=now_utc())
            self.store.update_estimate(approved)

            self.audit.log_change(
                entity_type="estimate",
                entity_id=estimate_id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": estimate.status.value, "new": EstimateStatus.APPROVED.value},
                    "invoice_id": {"old": None, "new": str(invoice.id)}
                }
            )

        logger.info("Converted estimate %s to invoice %s", estimate.estimate_number, invoice.invoice_number)
        self.event_bus.publish(EstimateApproved.create(estimate=approved, invoice=invoice))
        if invoice.is_paid:
            self.event_bus.publish(InvoicePaid.create(invoice=invoice))
        return invoice
