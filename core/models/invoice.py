"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Tax rate is a Decimal fraction (0.0875 = 8.75%).

balance_due_cents and status are computed properties. Status is a pure
function of (total, paid amount) plus the sent/cancelled markers, so it can
never drift from the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, model_validator

from core import money
from core.models.line_item import LineItemInput, LineItemSet

# Half a cent. With integer cents any difference is a whole cent, so a
# payment is "full" only when it reaches the total exactly.
PAID_TOLERANCE_CENTS = Decimal("0.5")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


def derive_invoice_status(
    total_cents: int,
    paid_amount_cents: int,
    *,
    sent: bool,
    cancelled: bool = False,
) -> InvoiceStatus:
    """
    Status for an invoice with the given totals.

    The paid check comes first so a $0.00 invoice is paid with no payments.
    Cancelled is sticky and overrides the amounts.
    """
    if cancelled:
        return InvoiceStatus.CANCELLED
    if total_cents - paid_amount_cents < PAID_TOLERANCE_CENTS:
        return InvoiceStatus.PAID
    if money.is_zero(paid_amount_cents):
        return InvoiceStatus.SENT if sent else InvoiceStatus.DRAFT
    return InvoiceStatus.PARTIAL


class InvoiceCreate(BaseModel):
    """Data required to create an invoice from manually supplied line items."""

    project_ref: str = Field(..., min_length=1, max_length=100)
    estimate_id: UUID | None = None
    date_issued: date | None = None
    due_date: date | None = None
    tax_rate: Decimal | None = Field(None, ge=0, le=1)  # None = config default
    line_items: list[LineItemInput] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=5000)
    send: bool = False


class InvoiceUpdate(BaseModel):
    """Replacement content for a draft invoice. line_items replaces the whole set."""

    line_items: list[LineItemInput]
    date_issued: date | None = None
    due_date: date | None = None
    tax_rate: Decimal | None = Field(None, ge=0, le=1)
    notes: str | None = Field(None, max_length=5000)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    invoice_number: str
    project_ref: str
    estimate_id: UUID | None
    pay_term_ids: list[UUID] = Field(default_factory=list)
    date_issued: date
    due_date: date | None
    tax_rate: Decimal = Field(..., ge=0, le=1)
    line_items: LineItemSet
    paid_amount_cents: int = Field(0, ge=0)
    sent_at: datetime | None = None
    cancelled_at: datetime | None = None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def paid_within_total(self) -> "Invoice":
        """Paid amount can never exceed the invoice total."""
        if self.paid_amount_cents > self.total_cents:
            raise ValueError(
                f"paid_amount_cents {self.paid_amount_cents} exceeds total {self.total_cents}"
            )
        return self

    @computed_field
    @property
    def subtotal_cents(self) -> int:
        return self.line_items.subtotal_cents

    @computed_field
    @property
    def tax_amount_cents(self) -> int:
        return money.apply_rate(self.subtotal_cents, self.tax_rate)

    @computed_field
    @property
    def total_cents(self) -> int:
        return money.add(self.subtotal_cents, self.tax_amount_cents)

    @computed_field
    @property
    def balance_due_cents(self) -> int:
        """Remaining amount to be paid in cents."""
        return money.subtract(self.total_cents, self.paid_amount_cents)

    @computed_field
    @property
    def status(self) -> InvoiceStatus:
        return derive_invoice_status(
            self.total_cents,
            self.paid_amount_cents,
            sent=self.sent_at is not None,
            cancelled=self.cancelled_at is not None,
        )

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID

    def revise(self, **changes) -> "Invoice":
        """Validated copy with the given fields replaced."""
        data = self.model_dump(exclude=set(Invoice.model_computed_fields))
        data.update(changes)
        return Invoice.model_validate(data)
