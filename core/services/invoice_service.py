"""
Invoice service for billing documents.

Invoices are created from manually entered line items, from an estimate
(see EstimateService.convert_to_invoice) or from pending pay terms. The
line items are copied at creation, so later estimate edits never reach an
issued invoice. Payments are handled by PaymentLedger, not here.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import InvoiceCancelled, InvoicePaid, InvoiceSent
from core.models import (
    Invoice, InvoiceCreate, InvoiceStatus, InvoiceUpdate, LineItemSet, PayTermStatus,
)
from core.numbering import DocumentNumberSequencer
from core.store.base import BillingStore, DocumentKind
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PARTIAL)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        store: BillingStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.numbers = DocumentNumberSequencer(store)

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create an invoice from manually supplied line items.

        Args:
            data: Invoice creation data. tax_rate None uses the configured default.

        Returns:
            Created invoice (draft, or sent when data.send is set)

        Raises:
            ValidationError: If no line items are given
            NotFoundError: If estimate_id does not exist
        """
        if not data.line_items:
            raise ValidationError("An invoice needs at least one line item")

        with self.store.transaction():
            if data.estimate_id is not None and self.store.get_estimate(data.estimate_id) is None:
                raise NotFoundError("estimate", data.estimate_id)

            invoice = self.create_from_line_items(
                project_ref=data.project_ref,
                line_items=LineItemSet.from_inputs(data.line_items),
                tax_rate=self.config.default_tax_rate if data.tax_rate is None else data.tax_rate,
                date_issued=data.date_issued,
                due_date=data.due_date,
                notes=data.notes,
                estimate_id=data.estimate_id,
                sent=data.send,
            )

        if invoice.sent_at is not None:
            self.event_bus.publish(InvoiceSent.create(invoice=invoice))
        if invoice.is_paid:
            self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return invoice

    def create_from_line_items(
        self,
        project_ref: str,
        line_items: LineItemSet,
        tax_rate: Decimal,
        date_issued: date | None = None,
        due_date: date | None = None,
        notes: str | None = None,
        estimate_id: UUID | None = None,
        pay_term_ids: list[UUID] | None = None,
        sent: bool = False,
    ) -> Invoice:
        """
        Number, store and audit a new invoice.

        Shared by every creation path. Joins the caller's transaction if one
        is open. Publishes nothing; callers publish after their commit.
        """
        issued = date_issued or today_utc()
        now = now_utc()

        with self.store.transaction():
            invoice = Invoice(
                id=uuid4(),
                invoice_number=self.numbers.next(
                    DocumentKind.INVOICE,
                    self.config.invoice_prefix,
                    self.config.invoice_number_floor,
                ),
                project_ref=project_ref,
                estimate_id=estimate_id,
                pay_term_ids=list(pay_term_ids or []),
                date_issued=issued,
                due_date=due_date or issued + timedelta(days=self.config.payment_terms_days),
                tax_rate=tax_rate,
                line_items=line_items.reindex(),
                paid_amount_cents=0,
                sent_at=now if sent else None,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            self.store.insert_invoice(invoice)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json")}
            )

        logger.info("Created invoice %s for project %s", invoice.invoice_number, project_ref)
        return invoice

    def create_from_pay_terms(
        self,
        project_ref: str,
        pay_term_ids: list[UUID],
        date_issued: date | None = None,
        due_date: date | None = None,
        notes: str | None = None,
        tax_rate: Decimal = Decimal(0),
    ) -> Invoice:
        """
        Create an invoice with one line per pay term.

        Term amounts are portions of an estimate total that already includes
        tax, so the invoice tax rate defaults to 0.

        Args:
            project_ref: Project every term must belong to
            pay_term_ids: Terms to bill, in line order
            date_issued: Issue date (defaults to today)
            due_date: Due date (defaults to issue date + payment terms)
            notes: Optional invoice notes
            tax_rate: Tax applied on top of the term amounts

        Returns:
            Created draft invoice

        Raises:
            ValidationError: No terms, duplicate terms, or a term from another project
            NotFoundError: A term does not exist
            InvalidStateError: A term is already paid or already on an open invoice
        """
        if not pay_term_ids:
            raise ValidationError("Select at least one pay term")
        if len(set(pay_term_ids)) != len(pay_term_ids):
            raise ValidationError("Pay terms may appear only once on an invoice")

        with self.store.transaction():
            terms = []
            for term_id in pay_term_ids:
                term = self.store.get_pay_term(term_id)
                if term is None:
                    raise NotFoundError("pay_term", term_id)
                if term.project_ref != project_ref:
                    raise ValidationError(
                        f"Pay term {term_id} belongs to project {term.project_ref}, not {project_ref}"
                    )
                if term.status != PayTermStatus.PENDING:
                    raise InvalidStateError(f"Pay term {term_id} is already paid")
                terms.append(term)

            self._ensure_not_invoiced(project_ref, set(pay_term_ids))

            estimate_ids = {term.estimate_id for term in terms}
            estimate_id = estimate_ids.pop() if len(estimate_ids) == 1 else None

            invoice = self.create_from_line_items(
                project_ref=project_ref,
                line_items=LineItemSet([
                    term.as_line_item(index) for index, term in enumerate(terms)
                ]),
                tax_rate=tax_rate,
                date_issued=date_issued,
                due_date=due_date,
                notes=notes,
                estimate_id=estimate_id,
                pay_term_ids=list(pay_term_ids),
            )

        if invoice.is_paid:
            self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return invoice

    def _ensure_not_invoiced(self, project_ref: str, term_ids: set[UUID]) -> None:
        for existing in self.store.list_invoices(project_ref=project_ref):
            if existing.status == InvoiceStatus.CANCELLED:
                continue
            overlap = term_ids.intersection(existing.pay_term_ids)
            if overlap:
                raise InvalidStateError(
                    f"Pay term {sorted(overlap, key=str)[0]} is already billed on "
                    f"invoice {existing.invoice_number}"
                )

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if found, None otherwise.
        """
        return self.store.get_invoice(invoice_id)

    def require(self, invoice_id: UUID) -> Invoice:
        """Get invoice by ID, raising NotFoundError if missing."""
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Replace the line items (and optionally header fields) of a draft invoice.

        Raises:
            NotFoundError: If invoice not found
            InvalidStateError: If the invoice is no longer a draft
            ValidationError: If no line items are given
        """
        if not data.line_items:
            raise ValidationError("An invoice needs at least one line item")

        with self.store.transaction():
            current = self.require(invoice_id)
            if current.status != InvoiceStatus.DRAFT:
                raise InvalidStateError(
                    f"Invoice {current.invoice_number} is {current.status.value}; only drafts can be edited"
                )

            changes = {
                "line_items": LineItemSet.from_inputs(data.line_items),
                "updated_at": now_utc(),
            }
            for field in ("date_issued", "due_date", "tax_rate", "notes"):
                value = getattr(data, field)
                if value is not None:
                    changes[field] = value

            updated = current.revise(**changes)
            self.store.update_invoice(updated)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    current.model_dump(mode="json"),
                    updated.model_dump(mode="json")
                )
            )

        return updated

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Mark an invoice as issued to the client.

        Raises:
            NotFoundError: If invoice not found
            InvalidStateError: If already sent or cancelled
        """
        with self.store.transaction():
            current = self.require(invoice_id)
            if current.cancelled_at is not None:
                raise InvalidStateError(f"Invoice {current.invoice_number} is cancelled")
            if current.sent_at is not None:
                raise InvalidStateError(f"Invoice {current.invoice_number} was already sent")

            now = now_utc()
            updated = current.revise(sent_at=now, updated_at=now)
            self.store.update_invoice(updated)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": current.status.value, "new": updated.status.value},
                    "sent_at": {"old": None, "new": now.isoformat()}
                }
            )

        self.event_bus.publish(InvoiceSent.create(invoice=updated))
        return updated

    def cancel(self, invoice_id: UUID) -> Invoice:
        """
        Cancel an unpaid invoice. Cancelled is final.

        Raises:
            NotFoundError: If invoice not found
            InvalidStateError: Unless the invoice is draft or sent with no payments
        """
        with self.store.transaction():
            current = self.require(invoice_id)
            if current.status not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
                raise InvalidStateError(
                    f"Invoice {current.invoice_number} is {current.status.value} and cannot be cancelled"
                )

            now = now_utc()
            updated = current.revise(cancelled_at=now, updated_at=now)
            self.store.update_invoice(updated)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": current.status.value, "new": InvoiceStatus.CANCELLED.value},
                    "cancelled_at": {"old": None, "new": now.isoformat()}
                }
            )

        self.event_bus.publish(InvoiceCancelled.create(invoice=updated))
        return updated

    def delete(self, invoice_id: UUID) -> None:
        """
        Delete an invoice that has no payments.

        Raises:
            NotFoundError: If invoice not found
            ReferentialIntegrityError: If payments exist
        """
        with self.store.transaction():
            current = self.require(invoice_id)
            self.store.delete_invoice(invoice_id)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")}
            )

        logger.info("Deleted invoice %s", current.invoice_number)

    def list_for_project(self, project_ref: str) -> list[Invoice]:
        """Invoices for a project, newest first."""
        return self.store.list_invoices(project_ref=project_ref)

    def list_for_estimate(self, estimate_id: UUID) -> list[Invoice]:
        return self.store.list_invoices(estimate_id=estimate_id)

    def list_unpaid(self, limit: int = 50) -> list[Invoice]:
        """
        Sent or partially paid invoices, earliest due first.

        Args:
            limit: Maximum results
        """
        unpaid = [
            invoice for invoice in self.store.list_invoices()
            if invoice.status in UNPAID_STATUSES
        ]
        unpaid.sort(key=lambda i: (i.due_date or i.date_issued, i.created_at))
        return unpaid[:limit]
