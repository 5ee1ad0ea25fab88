"""Receivables report models. All amounts in cents."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field, computed_field


class OverdueInvoice(BaseModel):
    """An unpaid invoice past its due date."""

    invoice_id: UUID
    invoice_number: str
    project_ref: str
    date_issued: date
    due_date: date
    total_cents: int
    paid_amount_cents: int
    balance_due_cents: int
    days_overdue: int


class AgingRow(BaseModel):
    """Outstanding balance of one project, by days past due."""

    project_ref: str
    current_cents: int = 0
    days_1_30_cents: int = 0
    days_31_60_cents: int = 0
    days_61_90_cents: int = 0
    over_90_cents: int = 0

    @computed_field
    @property
    def total_outstanding_cents(self) -> int:
        return (
            self.current_cents + self.days_1_30_cents + self.days_31_60_cents
            + self.days_61_90_cents + self.over_90_cents
        )


class InvoiceSummary(BaseModel):
    """Invoice counts and totals over an issue-date range."""

    start: date | None
    end: date | None
    total_invoices: int
    total_invoiced_cents: int
    total_paid_cents: int
    total_outstanding_cents: int
    average_invoice_cents: int
    by_status: dict[str, int] = Field(default_factory=dict)
    overdue_invoices: int
