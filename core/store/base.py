"""
Persistence contract for billing documents.

Services talk to a BillingStore, never to SQL directly, so the ledger rules
run unchanged against PostgreSQL or the in-process store. Every multi-row
change a service makes happens inside one transaction() block.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from core.models import Contract, Estimate, Invoice, Payment, PayTerm


class DocumentKind(Enum):
    """Numbered document types."""

    ESTIMATE = "estimate"
    INVOICE = "invoice"
    CONTRACT = "contract"


class BillingStore(ABC):
    """Storage for estimates, invoices, payments, pay terms, contracts and audit entries."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """
        Unit of work. All writes inside commit together or not at all.

        Nested calls join the outer transaction.
        """

    # -------------------------------------------------------------------------
    # Numbering
    # -------------------------------------------------------------------------

    @abstractmethod
    def lock_numbering(self, prefix: str) -> None:
        """Serialize number issuance for a prefix until the current transaction ends."""

    @abstractmethod
    def highest_number_suffix(self, kind: DocumentKind, prefix: str) -> int | None:
        """Largest numeric suffix among PREFIX-#### numbers of this kind, or None."""

    # -------------------------------------------------------------------------
    # Estimates (header + line items)
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_estimate(self, estimate: Estimate) -> None: ...

    @abstractmethod
    def update_estimate(self, estimate: Estimate) -> None:
        """Overwrite header and replace all line items."""

    @abstractmethod
    def get_estimate(self, estimate_id: UUID) -> Estimate | None: ...

    @abstractmethod
    def delete_estimate(self, estimate_id: UUID) -> None: ...

    @abstractmethod
    def list_estimates(self, project_ref: str | None = None) -> list[Estimate]:
        """Estimates, newest first."""

    # -------------------------------------------------------------------------
    # Invoices (header + line items)
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_invoice(self, invoice: Invoice) -> None: ...

    @abstractmethod
    def update_invoice(self, invoice: Invoice) -> None:
        """Overwrite header and replace all line items."""

    @abstractmethod
    def get_invoice(self, invoice_id: UUID) -> Invoice | None: ...

    @abstractmethod
    def delete_invoice(self, invoice_id: UUID) -> None: ...

    @abstractmethod
    def list_invoices(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[Invoice]:
        """Invoices, newest first."""

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_payment(self, payment: Payment) -> None: ...

    @abstractmethod
    def update_payment(self, payment: Payment) -> None: ...

    @abstractmethod
    def get_payment(self, payment_id: UUID) -> Payment | None: ...

    @abstractmethod
    def delete_payment(self, payment_id: UUID) -> None: ...

    @abstractmethod
    def list_payments(
        self,
        invoice_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Payment]:
        """Payments, most recent payment_date first."""

    # -------------------------------------------------------------------------
    # Pay terms
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_pay_term(self, pay_term: PayTerm) -> None: ...

    @abstractmethod
    def update_pay_term(self, pay_term: PayTerm) -> None: ...

    @abstractmethod
    def get_pay_term(self, pay_term_id: UUID) -> PayTerm | None: ...

    @abstractmethod
    def delete_pay_term(self, pay_term_id: UUID) -> None: ...

    @abstractmethod
    def list_pay_terms(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[PayTerm]:
        """Pay terms, by due date then creation time."""

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_contract(self, contract: Contract) -> None: ...

    @abstractmethod
    def update_contract(self, contract: Contract) -> None: ...

    @abstractmethod
    def get_contract(self, contract_id: UUID) -> Contract | None: ...

    @abstractmethod
    def delete_contract(self, contract_id: UUID) -> None: ...

    @abstractmethod
    def list_contracts(self, project_ref: str | None = None) -> list[Contract]:
        """Contracts, newest first."""

    # -------------------------------------------------------------------------
    # Audit log (append-only)
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_audit_entry(self, entry: dict[str, Any]) -> None: ...

    @abstractmethod
    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Entries for one entity, newest first."""
