"""
Receivables reports.

Read-only views over invoices: what is overdue, how old the outstanding
balances are, and how much was invoiced and collected in a period.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from core.errors import ValidationError
from core.models import AgingRow, Invoice, InvoiceStatus, InvoiceSummary, OverdueInvoice
from core.store.base import BillingStore
from utils.timezone import today_utc

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)

# Upper bound (days past due, inclusive) -> AgingRow field
AGING_BUCKETS = (
    (0, "current_cents"),
    (30, "days_1_30_cents"),
    (60, "days_31_60_cents"),
    (90, "days_61_90_cents"),
)


def _days_past_due(invoice: Invoice, as_of: date) -> int:
    due = invoice.due_date or invoice.date_issued
    return (as_of - due).days


class ReportService:
    """Service for receivables reports."""

    def __init__(self, store: BillingStore):
        self.store = store

    def _open_invoices(self) -> list[Invoice]:
        return [
            invoice for invoice in self.store.list_invoices()
            if invoice.status not in CLOSED_STATUSES and invoice.balance_due_cents > 0
        ]

    def overdue(self, as_of: date | None = None) -> list[OverdueInvoice]:
        """
        Unpaid, non-cancelled invoices whose due date has passed.

        Args:
            as_of: Reference date (defaults to today)

        Returns:
            Overdue invoices, oldest due date first
        """
        as_of = as_of or today_utc()

        rows = []
        for invoice in self._open_invoices():
            days = _days_past_due(invoice, as_of)
            if days <= 0:
                continue
            rows.append(OverdueInvoice(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                project_ref=invoice.project_ref,
                date_issued=invoice.date_issued,
                due_date=invoice.due_date or invoice.date_issued,
                total_cents=invoice.total_cents,
                paid_amount_cents=invoice.paid_amount_cents,
                balance_due_cents=invoice.balance_due_cents,
                days_overdue=days,
            ))

        rows.sort(key=lambda row: (row.due_date, row.invoice_number))
        return rows

    def aging(self, as_of: date | None = None) -> list[AgingRow]:
        """
        Outstanding balances per project, bucketed by days past due.

        Buckets are current (not yet due), 1-30, 31-60, 61-90 and over 90.

        Returns:
            One row per project with an open balance, largest total first
        """
        as_of = as_of or today_utc()
        rows: dict[str, AgingRow] = {}

        for invoice in self._open_invoices():
            row = rows.setdefault(invoice.project_ref, AgingRow(project_ref=invoice.project_ref))
            days = _days_past_due(invoice, as_of)

            bucket = "over_90_cents"
            for limit, name in AGING_BUCKETS:
                if days <= limit:
                    bucket = name
                    break
            setattr(row, bucket, getattr(row, bucket) + invoice.balance_due_cents)

        return sorted(rows.values(), key=lambda r: (-r.total_outstanding_cents, r.project_ref))

    def summary(self, start: date | None = None, end: date | None = None) -> InvoiceSummary:
        """
        Invoice counts and totals for invoices issued in [start, end].

        Cancelled invoices are counted by status but left out of the money
        totals.

        Raises:
            ValidationError: If start is after end
        """
        if start is not None and end is not None and start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")

        today = today_utc()
        invoices = [
            invoice for invoice in self.store.list_invoices()
            if (start is None or invoice.date_issued >= start)
            and (end is None or invoice.date_issued <= end)
        ]

        by_status = {status.value: 0 for status in InvoiceStatus}
        for invoice in invoices:
            by_status[invoice.status.value] += 1

        billable = [i for i in invoices if i.status != InvoiceStatus.CANCELLED]
        invoiced = sum(i.total_cents for i in billable)
        average = 0
        if billable:
            average = int((Decimal(invoiced) / len(billable)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

        return InvoiceSummary(
            start=start,
            end=end,
            total_invoices=len(invoices),
            total_invoiced_cents=invoiced,
            total_paid_cents=sum(i.paid_amount_cents for i in billable),
            total_outstanding_cents=sum(i.balance_due_cents for i in billable),
            average_invoice_cents=average,
            by_status=by_status,
            overdue_invoices=sum(
                1 for i in billable
                if i.balance_due_cents > 0 and _days_past_due(i, today) > 0
            ),
        )
