"""
In-process billing store.

Keeps documents in dicts guarded by one re-entrant lock. A transaction holds
the lock from start to finish and restores a snapshot if the block raises,
so readers never see half-applied changes. Used by the test suite and for
running the API without a database.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator
from uuid import UUID

from core.errors import ReferentialIntegrityError, ValidationError
from core.models import Contract, Estimate, Invoice, Payment, PayTerm
from core.numbering import parse_document_number
from core.store.base import BillingStore, DocumentKind

logger = logging.getLogger(__name__)


class InMemoryBillingStore(BillingStore):
    """BillingStore backed by dicts. Stored models are copied in and out."""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._estimates: dict[UUID, Estimate] = {}
        self._invoices: dict[UUID, Invoice] = {}
        self._payments: dict[UUID, Payment] = {}
        self._pay_terms: dict[UUID, PayTerm] = {}
        self._contracts: dict[UUID, Contract] = {}
        self._audit: list[dict[str, Any]] = []

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                logger.debug("Rolled back in-memory transaction")
                raise
            finally:
                self._depth = 0

    def _snapshot(self) -> tuple:
        return (
            dict(self._estimates),
            dict(self._invoices),
            dict(self._payments),
            dict(self._pay_terms),
            dict(self._contracts),
            list(self._audit),
        )

    def _restore(self, snapshot: tuple) -> None:
        (
            self._estimates,
            self._invoices,
            self._payments,
            self._pay_terms,
            self._contracts,
            self._audit,
        ) = snapshot

    # -------------------------------------------------------------------------
    # Numbering
    # -------------------------------------------------------------------------

    def lock_numbering(self, prefix: str) -> None:
        # The store lock is already held for the whole transaction.
        return None

    def highest_number_suffix(self, kind: DocumentKind, prefix: str) -> int | None:
        with self._lock:
            if kind == DocumentKind.ESTIMATE:
                numbers = [e.estimate_number for e in self._estimates.values()]
            elif kind == DocumentKind.CONTRACT:
                numbers = [c.contract_number for c in self._contracts.values()]
            else:
                numbers = [i.invoice_number for i in self._invoices.values()]

        suffixes = [
            suffix for suffix in (parse_document_number(n, prefix) for n in numbers)
            if suffix is not None
        ]
        return max(suffixes, default=None)

    # -------------------------------------------------------------------------
    # Estimates
    # -------------------------------------------------------------------------

    def insert_estimate(self, estimate: Estimate) -> None:
        with self._lock:
            if any(e.estimate_number == estimate.estimate_number for e in self._estimates.values()):
                raise ValidationError(f"Estimate number {estimate.estimate_number} already exists")
            self._estimates[estimate.id] = estimate.model_copy(deep=True)

    def update_estimate(self, estimate: Estimate) -> None:
        with self._lock:
            self._require(self._estimates, estimate.id, "estimate")
            self._estimates[estimate.id] = estimate.model_copy(deep=True)

    def get_estimate(self, estimate_id: UUID) -> Estimate | None:
        with self._lock:
            estimate = self._estimates.get(estimate_id)
            return estimate.model_copy(deep=True) if estimate else None

    def delete_estimate(self, estimate_id: UUID) -> None:
        with self._lock:
            if any(i.estimate_id == estimate_id for i in self._invoices.values()):
                raise ReferentialIntegrityError(f"Estimate {estimate_id} is referenced by invoices")
            self._estimates.pop(estimate_id, None)
            for term_id in [t.id for t in self._pay_terms.values() if t.estimate_id == estimate_id]:
                del self._pay_terms[term_id]

    def list_estimates(self, project_ref: str | None = None) -> list[Estimate]:
        with self._lock:
            rows = [
                e.model_copy(deep=True) for e in self._estimates.values()
                if project_ref is None or e.project_ref == project_ref
            ]
        return sorted(rows, key=lambda e: e.created_at, reverse=True)

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def insert_invoice(self, invoice: Invoice) -> None:
        with self._lock:
            if any(i.invoice_number == invoice.invoice_number for i in self._invoices.values()):
                raise ValidationError(f"Invoice number {invoice.invoice_number} already exists")
            if invoice.estimate_id is not None:
                self._require(self._estimates, invoice.estimate_id, "estimate")
            self._invoices[invoice.id] = invoice.model_copy(deep=True)

    def update_invoice(self, invoice: Invoice) -> None:
        with self._lock:
            self._require(self._invoices, invoice.id, "invoice")
            self._invoices[invoice.id] = invoice.model_copy(deep=True)

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return invoice.model_copy(deep=True) if invoice else None

    def delete_invoice(self, invoice_id: UUID) -> None:
        with self._lock:
            if any(p.invoice_id == invoice_id for p in self._payments.values()):
                raise ReferentialIntegrityError(f"Invoice {invoice_id} has payments")
            self._invoices.pop(invoice_id, None)

    def list_invoices(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[Invoice]:
        with self._lock:
            rows = [
                i.model_copy(deep=True) for i in self._invoices.values()
                if (project_ref is None or i.project_ref == project_ref)
                and (estimate_id is None or i.estimate_id == estimate_id)
            ]
        return sorted(rows, key=lambda i: i.created_at, reverse=True)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def insert_payment(self, payment: Payment) -> None:
        with self._lock:
            self._require(self._invoices, payment.invoice_id, "invoice")
            self._payments[payment.id] = payment.model_copy(deep=True)

    def update_payment(self, payment: Payment) -> None:
        with self._lock:
            self._require(self._payments, payment.id, "payment")
            self._payments[payment.id] = payment.model_copy(deep=True)

    def get_payment(self, payment_id: UUID) -> Payment | None:
        with self._lock:
            payment = self._payments.get(payment_id)
            return payment.model_copy(deep=True) if payment else None

    def delete_payment(self, payment_id: UUID) -> None:
        with self._lock:
            self._payments.pop(payment_id, None)

    def list_payments(
        self,
        invoice_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Payment]:
        with self._lock:
            rows = [
                p.model_copy(deep=True) for p in self._payments.values()
                if (invoice_id is None or p.invoice_id == invoice_id)
                and (start is None or p.payment_date >= start)
                and (end is None or p.payment_date <= end)
            ]
        return sorted(rows, key=lambda p: (p.payment_date, p.created_at), reverse=True)

    # -------------------------------------------------------------------------
    # Pay terms
    # -------------------------------------------------------------------------

    def insert_pay_term(self, pay_term: PayTerm) -> None:
        with self._lock:
            if pay_term.estimate_id is not None:
                self._require(self._estimates, pay_term.estimate_id, "estimate")
            self._pay_terms[pay_term.id] = pay_term.model_copy(deep=True)

    def update_pay_term(self, pay_term: PayTerm) -> None:
        with self._lock:
            self._require(self._pay_terms, pay_term.id, "pay_term")
            self._pay_terms[pay_term.id] = pay_term.model_copy(deep=True)

    def get_pay_term(self, pay_term_id: UUID) -> PayTerm | None:
        with self._lock:
            term = self._pay_terms.get(pay_term_id)
            return term.model_copy(deep=True) if term else None

    def delete_pay_term(self, pay_term_id: UUID) -> None:
        with self._lock:
            self._pay_terms.pop(pay_term_id, None)

    def list_pay_terms(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[PayTerm]:
        with self._lock:
            rows = [
                t.model_copy(deep=True) for t in self._pay_terms.values()
                if (project_ref is None or t.project_ref == project_ref)
                and (estimate_id is None or t.estimate_id == estimate_id)
            ]
        return sorted(rows, key=lambda t: (t.due_date is None, t.due_date or date.min, t.created_at))

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    def insert_contract(self, contract: Contract) -> None:
        with self._lock:
            if any(c.contract_number == contract.contract_number for c in self._contracts.values()):
                raise ValidationError(f"Contract number {contract.contract_number} already exists")
            self._contracts[contract.id] = contract.model_copy(deep=True)

    def update_contract(self, contract: Contract) -> None:
        with self._lock:
            self._require(self._contracts, contract.id, "contract")
            self._contracts[contract.id] = contract.model_copy(deep=True)

    def get_contract(self, contract_id: UUID) -> Contract | None:
        with self._lock:
            contract = self._contracts.get(contract_id)
            return contract.model_copy(deep=True) if contract else None

    def delete_contract(self, contract_id: UUID) -> None:
        with self._lock:
            self._contracts.pop(contract_id, None)

    def list_contracts(self, project_ref: str | None = None) -> list[Contract]:
        with self._lock:
            rows = [
                c.model_copy(deep=True) for c in self._contracts.values()
                if project_ref is None or c.project_ref == project_ref
            ]
        return sorted(rows, key=lambda c: c.created_at, reverse=True)

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    def insert_audit_entry(self, entry: dict[str, Any]) -> None:
        with self._lock:
            self._audit.append(dict(entry))

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                dict(e) for e in self._audit
                if e["entity_type"] == entity_type and e["entity_id"] == entity_id
            ]
        return list(reversed(rows))

    @staticmethod
    def _require(table: dict, key: UUID, entity_type: str) -> None:
        if key not in table:
            raise ReferentialIntegrityError(f"{entity_type} {key} does not exist")
