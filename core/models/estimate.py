"""Estimate domain models.

Totals are never stored as inputs: subtotal, tax and total are always
computed from the line items and the tax rate.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from core import money
from core.models.line_item import LineItemInput, LineItemSet


class EstimateStatus(str, Enum):
    """Estimate lifecycle status."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def combine_notes(exclusions: str | None, notes: str | None) -> str | None:
    """Exclusions first, then notes, separated by a blank line."""
    parts = [part.strip() for part in (exclusions, notes) if part and part.strip()]
    return "\n\n".join(parts) or None


class EstimateCreate(BaseModel):
    """Data required to create an estimate."""

    project_ref: str = Field(..., min_length=1, max_length=100)
    date_issued: date | None = None
    valid_until: date | None = None
    tax_rate: Decimal | None = Field(None, ge=0, le=1)  # None = config default
    line_items: list[LineItemInput] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=5000)
    exclusions: str | None = Field(None, max_length=5000)


class EstimateUpdate(BaseModel):
    """
    Replacement content for an editable estimate.

    line_items always replaces the whole set. Header fields left as None keep
    their current value; the tax rate never falls back to the default here.
    """

    line_items: list[LineItemInput]
    project_ref: str | None = Field(None, min_length=1, max_length=100)
    date_issued: date | None = None
    valid_until: date | None = None
    tax_rate: Decimal | None = Field(None, ge=0, le=1)
    notes: str | None = Field(None, max_length=5000)
    exclusions: str | None = Field(None, max_length=5000)


class Estimate(BaseModel):
    """Full estimate entity as stored."""

    id: UUID
    estimate_number: str
    project_ref: str
    date_issued: date
    valid_until: date | None
    tax_rate: Decimal = Field(..., ge=0, le=1)
    line_items: LineItemSet
    status: EstimateStatus
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

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

    @property
    def is_editable(self) -> bool:
        """Approved estimates are frozen; everything else may be revised."""
        return self.status != EstimateStatus.APPROVED

    def revise(self, **changes) -> "Estimate":
        """Validated copy with the given fields replaced."""
        data = self.model_dump(exclude=set(Estimate.model_computed_fields))
        data.update(changes)
        return Estimate.model_validate(data)
