"""
PostgreSQL billing store.

SQL implementation of BillingStore on top of PostgresClient. Schema lives in
schema.sql at the repository root. Estimates and invoices are written as a
header row plus a full replacement of their line item rows; the computed
totals and status are written alongside for querying.
"""

import logging
import re
from contextlib import contextmanager
from datetime import date
from typing import Any
from uuid import UUID

import psycopg2.errors
import psycopg2.extras

from clients.postgres_client import PostgresClient
from core.errors import ReferentialIntegrityError, ValidationError
from core.models import Contract, Estimate, Invoice, LineItemSet, Payment, PayTerm
from core.store.base import BillingStore, DocumentKind

logger = logging.getLogger(__name__)

_NUMBER_COLUMNS = {
    DocumentKind.ESTIMATE: ("estimates", "estimate_number"),
    DocumentKind.INVOICE: ("invoices", "invoice_number"),
    DocumentKind.CONTRACT: ("contracts", "contract_number"),
}

_LINE_ITEM_COLUMNS = "description, quantity, unit_rate_cents, sort_order"


@contextmanager
def _integrity_errors():
    """Translate constraint violations into billing errors."""
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        raise ValidationError(f"Duplicate value: {e.diag.message_detail}") from e
    except psycopg2.errors.ForeignKeyViolation as e:
        raise ReferentialIntegrityError(f"Referenced record missing or in use: {e.diag.message_detail}") from e


class PostgresBillingStore(BillingStore):
    """BillingStore backed by PostgreSQL."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def transaction(self):
        return self.postgres.transaction()

    # -------------------------------------------------------------------------
    # Numbering
    # -------------------------------------------------------------------------

    def lock_numbering(self, prefix: str) -> None:
        if not self.postgres.in_transaction:
            logger.warning("Numbering lock for %s taken outside a transaction", prefix)
        self.postgres.execute_scalar(
            "SELECT pg_advisory_xact_lock(hashtext(%s))",
            (f"document_number:{prefix}",)
        )

    def highest_number_suffix(self, kind: DocumentKind, prefix: str) -> int | None:
        table, column = _NUMBER_COLUMNS[kind]
        pattern = f"^{re.escape(prefix)}-([0-9]+)$"
        return self.postgres.execute_scalar(
            f"""
            SELECT MAX(CAST(substring({column} FROM %s) AS BIGINT))
            FROM {table}
            WHERE {column} ~ %s
            """,
            (pattern, pattern)
        )

    # -------------------------------------------------------------------------
    # Line items
    # -------------------------------------------------------------------------

    def _load_line_items(self, table: str, owner_column: str, owner_id: UUID) -> LineItemSet:
        rows = self.postgres.execute(
            f"""
            SELECT {_LINE_ITEM_COLUMNS} FROM {table}
            WHERE {owner_column} = %s
            ORDER BY sort_order ASC
            """,
            (owner_id,)
        )
        return LineItemSet.model_validate(rows).reindex()

    def _replace_line_items(self, table: str, owner_column: str, owner_id: UUID, items: LineItemSet) -> None:
        self.postgres.execute(f"DELETE FROM {table} WHERE {owner_column} = %s", (owner_id,))
        self.postgres.execute_many(
            f"""
            INSERT INTO {table} ({owner_column}, {_LINE_ITEM_COLUMNS})
            VALUES (%s, %s, %s, %s, %s)
            """,
            [
                (owner_id, item.description, item.quantity, item.unit_rate_cents, item.sort_order)
                for item in items.reindex()
            ]
        )

    # -------------------------------------------------------------------------
    # Estimates
    # -------------------------------------------------------------------------

    def _estimate_from_row(self, row: dict[str, Any]) -> Estimate:
        items = self._load_line_items("estimate_line_items", "estimate_id", row["id"])
        return Estimate.model_validate({**row, "line_items": items})

    def insert_estimate(self, estimate: Estimate) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute(
                """
                INSERT INTO estimates (
                    id, estimate_number, project_ref, date_issued, valid_until,
                    tax_rate, status, notes,
                    subtotal_cents, tax_amount_cents, total_cents,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s,
                    %s, %s
                )
                """,
                (
                    estimate.id, estimate.estimate_number, estimate.project_ref,
                    estimate.date_issued, estimate.valid_until,
                    estimate.tax_rate, estimate.status.value, estimate.notes,
                    estimate.subtotal_cents, estimate.tax_amount_cents, estimate.total_cents,
                    estimate.created_at, estimate.updated_at
                )
            )
            self._replace_line_items("estimate_line_items", "estimate_id", estimate.id, estimate.line_items)

    def update_estimate(self, estimate: Estimate) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute(
                """
                UPDATE estimates
                SET project_ref = %s, date_issued = %s, valid_until = %s,
                    tax_rate = %s, status = %s, notes = %s,
                    subtotal_cents = %s, tax_amount_cents = %s, total_cents = %s,
                    updated_at = %s
                WHERE id = %s
                """,
                (
                    estimate.project_ref, estimate.date_issued, estimate.valid_until,
                    estimate.tax_rate, estimate.status.value, estimate.notes,
                    estimate.subtotal_cents, estimate.tax_amount_cents, estimate.total_cents,
                    estimate.updated_at, estimate.id
                )
            )
            self._replace_line_items("estimate_line_items", "estimate_id", estimate.id, estimate.line_items)

    def get_estimate(self, estimate_id: UUID) -> Estimate | None:
        row = self.postgres.execute_single(
            "SELECT * FROM estimates WHERE id = %s",
            (estimate_id,)
        )
        if row is None:
            return None
        return self._estimate_from_row(row)

    def delete_estimate(self, estimate_id: UUID) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute("DELETE FROM estimates WHERE id = %s", (estimate_id,))

    def list_estimates(self, project_ref: str | None = None) -> list[Estimate]:
        rows = self.postgres.execute(
            """
            SELECT * FROM estimates
            WHERE (%s::text IS NULL OR project_ref = %s)
            ORDER BY created_at DESC
            """,
            (project_ref, project_ref)
        )
        return [self._estimate_from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def _invoice_from_row(self, row: dict[str, Any]) -> Invoice:
        items = self._load_line_items("invoice_line_items", "invoice_id", row["id"])
        return Invoice.model_validate({**row, "line_items": items})

    def insert_invoice(self, invoice: Invoice) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute(
                """
                INSERT INTO invoices (
                    id, invoice_number, project_ref, estimate_id, pay_term_ids,
                    date_issued, due_date, tax_rate, paid_amount_cents,
                    sent_at, cancelled_at, notes,
                    subtotal_cents, tax_amount_cents, total_cents, status,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s::uuid[],
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                """,
                (
                    invoice.id, invoice.invoice_number, invoice.project_ref,
                    invoice.estimate_id, list(invoice.pay_term_ids),
                    invoice.date_issued, invoice.due_date, invoice.tax_rate, invoice.paid_amount_cents,
                    invoice.sent_at, invoice.cancelled_at, invoice.notes,
                    invoice.subtotal_cents, invoice.tax_amount_cents, invoice.total_cents,
                    invoice.status.value,
                    invoice.created_at, invoice.updated_at
                )
            )
            self._replace_line_items("invoice_line_items", "invoice_id", invoice.id, invoice.line_items)

    def update_invoice(self, invoice: Invoice) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute(
                """
                UPDATE invoices
                SET date_issued = %s, due_date = %s, tax_rate = %s,
                    paid_amount_cents = %s, sent_at = %s, cancelled_at = %s, notes = %s,
                    subtotal_cents = %s, tax_amount_cents = %s, total_cents = %s,
                    status = %s, updated_at = %s
                WHERE id = %s
                """,
                (
                    invoice.date_issued, invoice.due_date, invoice.tax_rate,
                    invoice.paid_amount_cents, invoice.sent_at, invoice.cancelled_at, invoice.notes,
                    invoice.subtotal_cents, invoice.tax_amount_cents, invoice.total_cents,
                    invoice.status.value, invoice.updated_at, invoice.id
                )
            )
            self._replace_line_items("invoice_line_items", "invoice_id", invoice.id, invoice.line_items)

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        if row is None:
            return None
        return self._invoice_from_row(row)

    def delete_invoice(self, invoice_id: UUID) -> None:
        with self.transaction(), _integrity_errors():
            self.postgres.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))

    def list_invoices(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[Invoice]:
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE (%s::text IS NULL OR project_ref = %s)
              AND (%s::uuid IS NULL OR estimate_id = %s::uuid)
            ORDER BY created_at DESC
            """,
            (project_ref, project_ref, estimate_id, estimate_id)
        )
        return [self._invoice_from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def insert_payment(self, payment: Payment) -> None:
        with _integrity_errors():
            self.postgres.execute(
                """
                INSERT INTO payments (
                    id, invoice_id, amount_cents, payment_date, method, reference, notes,
                    created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    payment.id, payment.invoice_id, payment.amount_cents, payment.payment_date,
                    payment.method, payment.reference, payment.notes,
                    payment.created_at, payment.updated_at
                )
            )

    def update_payment(self, payment: Payment) -> None:
        self.postgres.execute(
            """
            UPDATE payments
            SET amount_cents = %s, payment_date = %s, method = %s, reference = %s,
                notes = %s, updated_at = %s
            WHERE id = %s
            """,
            (
                payment.amount_cents, payment.payment_date, payment.method, payment.reference,
                payment.notes, payment.updated_at, payment.id
            )
        )

    def get_payment(self, payment_id: UUID) -> Payment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE id = %s",
            (payment_id,)
        )
        if row is None:
            return None
        return Payment.model_validate(row)

    def delete_payment(self, payment_id: UUID) -> None:
        self.postgres.execute("DELETE FROM payments WHERE id = %s", (payment_id,))

    def list_payments(
        self,
        invoice_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Payment]:
        rows = self.postgres.execute(
            """
            SELECT * FROM payments
            WHERE (%s::uuid IS NULL OR invoice_id = %s::uuid)
              AND (%s::date IS NULL OR payment_date >= %s::date)
              AND (%s::date IS NULL OR payment_date <= %s::date)
            ORDER BY payment_date DESC, created_at DESC
            """,
            (invoice_id, invoice_id, start, start, end, end)
        )
        return [Payment.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Pay terms
    # -------------------------------------------------------------------------

    def insert_pay_term(self, pay_term: PayTerm) -> None:
        with _integrity_errors():
            self.postgres.execute(
                """
                INSERT INTO pay_terms (
                    id, project_ref, estimate_id, kind, label, percentage, amount_cents,
                    due_trigger, description, due_date, status, paid_on,
                    created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    pay_term.id, pay_term.project_ref, pay_term.estimate_id,
                    pay_term.kind.value, pay_term.label, pay_term.percentage, pay_term.amount_cents,
                    pay_term.due_trigger, pay_term.description, pay_term.due_date,
                    pay_term.status.value, pay_term.paid_on,
                    pay_term.created_at, pay_term.updated_at
                )
            )

    def update_pay_term(self, pay_term: PayTerm) -> None:
        self.postgres.execute(
            """
            UPDATE pay_terms
            SET kind = %s, label = %s, percentage = %s, amount_cents = %s, due_trigger = %s,
                description = %s, due_date = %s, status = %s, paid_on = %s,
                updated_at = %s
            WHERE id = %s
            """,
            (
                pay_term.kind.value, pay_term.label, pay_term.percentage, pay_term.amount_cents,
                pay_term.due_trigger, pay_term.description, pay_term.due_date,
                pay_term.status.value, pay_term.paid_on, pay_term.updated_at, pay_term.id
            )
        )

    def get_pay_term(self, pay_term_id: UUID) -> PayTerm | None:
        row = self.postgres.execute_single(
            "SELECT * FROM pay_terms WHERE id = %s",
            (pay_term_id,)
        )
        if row is None:
            return None
        return PayTerm.model_validate(row)

    def delete_pay_term(self, pay_term_id: UUID) -> None:
        self.postgres.execute("DELETE FROM pay_terms WHERE id = %s", (pay_term_id,))

    def list_pay_terms(
        self,
        project_ref: str | None = None,
        estimate_id: UUID | None = None,
    ) -> list[PayTerm]:
        rows = self.postgres.execute(
            """
            SELECT * FROM pay_terms
            WHERE (%s::text IS NULL OR project_ref = %s)
              AND (%s::uuid IS NULL OR estimate_id = %s::uuid)
            ORDER BY due_date ASC NULLS LAST, created_at ASC
            """,
            (project_ref, project_ref, estimate_id, estimate_id)
        )
        return [PayTerm.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    def insert_contract(self, contract: Contract) -> None:
        with _integrity_errors():
            self.postgres.execute(
                """
                INSERT INTO contracts (
                    id, contract_number, project_ref, contract_type, amount_cents,
                    status, signed_on, signed_by, notes, created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    contract.id, contract.contract_number, contract.project_ref,
                    contract.contract_type, contract.amount_cents,
                    contract.status.value, contract.signed_on, contract.signed_by,
                    contract.notes, contract.created_at, contract.updated_at
                )
            )

    def update_contract(self, contract: Contract) -> None:
        self.postgres.execute(
            """
            UPDATE contracts
            SET contract_type = %s, amount_cents = %s, status = %s,
                signed_on = %s, signed_by = %s, notes = %s, updated_at = %s
            WHERE id = %s
            """,
            (
                contract.contract_type, contract.amount_cents, contract.status.value,
                contract.signed_on, contract.signed_by, contract.notes,
                contract.updated_at, contract.id
            )
        )

    def get_contract(self, contract_id: UUID) -> Contract | None:
        row = self.postgres.execute_single(
            "SELECT * FROM contracts WHERE id = %s",
            (contract_id,)
        )
        if row is None:
            return None
        return Contract.model_validate(row)

    def delete_contract(self, contract_id: UUID) -> None:
        self.postgres.execute("DELETE FROM contracts WHERE id = %s", (contract_id,))

    def list_contracts(self, project_ref: str | None = None) -> list[Contract]:
        rows = self.postgres.execute(
            """
            SELECT * FROM contracts
            WHERE (%s::text IS NULL OR project_ref = %s)
            ORDER BY created_at DESC
            """,
            (project_ref, project_ref)
        )
        return [Contract.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    def insert_audit_entry(self, entry: dict[str, Any]) -> None:
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                entry["id"],
                entry["entity_type"],
                entry["entity_id"],
                entry["action"],
                psycopg2.extras.Json(entry["changes"]),
                entry["created_at"],
            )
        )

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        return self.postgres.execute(
            """
            SELECT id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )
