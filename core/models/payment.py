"""Payment domain models.

Amounts are integer cents. Amount validation (positive, within balance) is
done by the ledger so that rejections carry billing error types.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    """Data required to post a payment."""

    amount_cents: int
    payment_date: date | None = None
    method: str = Field("Check", max_length=50)
    reference: str | None = Field(None, max_length=200)
    notes: str | None = Field(None, max_length=2000)


class PaymentUpdate(BaseModel):
    """Amended payment. Fields left as None keep their current value."""

    amount_cents: int | None = None
    payment_date: date | None = None
    method: str | None = Field(None, max_length=50)
    reference: str | None = Field(None, max_length=200)
    notes: str | None = Field(None, max_length=2000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    invoice_id: UUID
    amount_cents: int = Field(..., gt=0)
    payment_date: date
    method: str
    reference: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentSummary(BaseModel):
    """Aggregate of payments received over a date range."""

    start: date | None
    end: date | None
    count: int
    total_cents: int
    average_cents: int
    min_cents: int | None
    max_cents: int | None
