"""
Pay term service.

Derives installment terms from an estimate total and tracks which have
been paid. Regeneration replaces only pending terms and never rewrites a
paid one. A term billed on an invoice that is not cancelled cannot be
replaced, edited or deleted until that invoice is cancelled.
"""

import logging
from datetime import date
from uuid import UUID, uuid4

from core.allocation import allocate
from core.audit import AuditLogger, AuditAction, compute_changes
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.models import (
    AllocationPolicy, Invoice, InvoiceStatus, PayTerm, PayTermCreate, PayTermKind, PayTermStatus,
    PayTermUpdate,
)
from core.store.base import BillingStore
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)


class PayTermService:
    """Service for pay term operations."""

    def __init__(self, store: BillingStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def allocate(self, estimate_id: UUID, policy: AllocationPolicy) -> list[PayTerm]:
        """
        Replace an estimate's pending pay terms with a fresh allocation.

        Amounts are computed from the estimate total at this moment and then
        frozen on the terms.

        Args:
            estimate_id: Estimate whose total is split
            policy: FullOnAcceptance, SplitOnPermit or CustomTerms

        Returns:
            The newly created terms, in due order

        Raises:
            NotFoundError: If estimate not found
            InvalidStateError: If a pending term is billed on an open invoice
        """
        with self.store.transaction():
            estimate = self.store.get_estimate(estimate_id)
            if estimate is None:
                raise NotFoundError("estimate", estimate_id)

            drafts = allocate(estimate.total_cents, policy)

            replaced = [
                term for term in self.store.list_pay_terms(
                    project_ref=estimate.project_ref, estimate_id=estimate_id
                )
                if term.status == PayTermStatus.PENDING
            ]
            for term in replaced:
                self._ensure_not_billed(term, "replaced")

            for term in replaced:
                self.store.delete_pay_term(term.id)
                self.audit.log_change(
                    entity_type="pay_term",
                    entity_id=term.id,
                    action=AuditAction.DELETE,
                    changes={"deleted": term.model_dump(mode="json")}
                )

            now = now_utc()
            created = []
            for draft in drafts:
                term = PayTerm(
                    id=uuid4(),
                    project_ref=estimate.project_ref,
                    estimate_id=estimate_id,
                    due_date=None,
                    status=PayTermStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                    **draft.model_dump(),
                )
                self.store.insert_pay_term(term)
                self._log_created(term)
                created.append(term)

        logger.info(
            "Allocated %d pay terms for estimate %s (%s), replaced %d pending",
            len(created), estimate.estimate_number, policy.kind, len(replaced),
        )
        return created

    def create(self, data: PayTermCreate) -> PayTerm:
        """
        Add one fixed-amount term without touching existing terms.

        Raises:
            NotFoundError: If estimate_id is given and not found
            ValidationError: If the estimate belongs to another project
        """
        with self.store.transaction():
            if data.estimate_id is not None:
                estimate = self.store.get_estimate(data.estimate_id)
                if estimate is None:
                    raise NotFoundError("estimate", data.estimate_id)
                if estimate.project_ref != data.project_ref:
                    raise ValidationError(
                        f"Estimate {estimate.estimate_number} belongs to project "
                        f"{estimate.project_ref}, not {data.project_ref}"
                    )

            now = now_utc()
            term = PayTerm(
                id=uuid4(),
                project_ref=data.project_ref,
                estimate_id=data.estimate_id,
                kind=PayTermKind.FIXED_AMOUNT,
                label=data.label,
                percentage=None,
                amount_cents=data.amount_cents,
                due_trigger=data.due_trigger,
                description=data.description,
                due_date=data.due_date,
                status=PayTermStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.store.insert_pay_term(term)
            self._log_created(term)

        logger.info("Created pay term '%s' for project %s", term.label, term.project_ref)
        return term

    def update(self, pay_term_id: UUID, data: PayTermUpdate) -> PayTerm:
        """
        Edit a pending, unbilled term.

        Raises:
            NotFoundError: If term not found
            InvalidStateError: If the term is paid or billed on an open invoice
        """
        with self.store.transaction():
            current = self._require(pay_term_id)
            if current.status == PayTermStatus.PAID:
                raise InvalidStateError(f"Pay term {pay_term_id} is paid and cannot be edited")
            self._ensure_not_billed(current, "edited")

            changes = data.model_dump(exclude_none=True)
            if "amount_cents" in changes and changes["amount_cents"] != current.amount_cents:
                changes["kind"] = PayTermKind.FIXED_AMOUNT
                changes["percentage"] = None
            changes["updated_at"] = now_utc()

            updated = current.model_copy(update=changes)
            self.store.update_pay_term(updated)

            self.audit.log_change(
                entity_type="pay_term",
                entity_id=pay_term_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    current.model_dump(mode="json"),
                    updated.model_dump(mode="json")
                )
            )

        return updated

    def get_by_id(self, pay_term_id: UUID) -> PayTerm | None:
        return self.store.get_pay_term(pay_term_id)

    def list_for_project(self, project_ref: str) -> list[PayTerm]:
        return self.store.list_pay_terms(project_ref=project_ref)

    def list_for_estimate(self, estimate_id: UUID) -> list[PayTerm]:
        return self.store.list_pay_terms(estimate_id=estimate_id)

    def billed_on(self, term: PayTerm) -> Invoice | None:
        """The non-cancelled invoice that bills this term, if any."""
        for invoice in self.store.list_invoices(project_ref=term.project_ref):
            if invoice.status != InvoiceStatus.CANCELLED and term.id in invoice.pay_term_ids:
                return invoice
        return None

    def mark_paid(self, pay_term_id: UUID, paid_on: date | None = None) -> PayTerm:
        """
        Record that a term has been settled.

        Raises:
            NotFoundError: If term not found
            InvalidStateError: If already paid
        """
        with self.store.transaction():
            current = self._require(pay_term_id)
            if current.status == PayTermStatus.PAID:
                raise InvalidStateError(f"Pay term {pay_term_id} is already paid")

            updated = current.model_copy(update={
                "status": PayTermStatus.PAID,
                "paid_on": paid_on or today_utc(),
                "updated_at": now_utc(),
            })
            self.store.update_pay_term(updated)

            self.audit.log_change(
                entity_type="pay_term",
                entity_id=pay_term_id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": current.status.value, "new": PayTermStatus.PAID.value},
                    "paid_on": {"old": None, "new": updated.paid_on.isoformat()}
                }
            )

        return updated

    def delete(self, pay_term_id: UUID) -> None:
        """
        Delete a pending, unbilled term.

        Raises:
            NotFoundError: If term not found
            InvalidStateError: If the term is paid or billed on an open invoice
        """
        with self.store.transaction():
            current = self._require(pay_term_id)
            if current.status == PayTermStatus.PAID:
                raise InvalidStateError(f"Pay term {pay_term_id} is paid and cannot be deleted")
            self._ensure_not_billed(current, "deleted")

            self.store.delete_pay_term(pay_term_id)
            self.audit.log_change(
                entity_type="pay_term",
                entity_id=pay_term_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")}
            )

    def _require(self, pay_term_id: UUID) -> PayTerm:
        term = self.store.get_pay_term(pay_term_id)
        if term is None:
            raise NotFoundError("pay_term", pay_term_id)
        return term

    def _ensure_not_billed(self, term: PayTerm, verb: str) -> None:
        invoice = self.billed_on(term)
        if invoice is not None:
            raise InvalidStateError(
                f"Pay term '{term.label}' is billed on invoice {invoice.invoice_number} "
                f"and cannot be {verb} until that invoice is cancelled"
            )

    def _log_created(self, term: PayTerm) -> None:
        self.audit.log_change(
            entity_type="pay_term",
            entity_id=term.id,
            action=AuditAction.CREATE,
            changes={"created": term.model_dump(mode="json")}
        )
