"""Pay term domain models.

A pay term is one scheduled installment of an estimate. Percentage terms
have their amount computed once, at allocation, and then frozen: later
edits to the estimate do not change issued terms.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.line_item import LineItem


class PayTermKind(str, Enum):
    """How a term's amount was determined."""

    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class PayTermStatus(str, Enum):
    """Pay term settlement status."""

    PENDING = "pending"
    PAID = "paid"


class PayTermDraft(BaseModel):
    """A term produced by the allocator, before it is stored."""

    kind: PayTermKind
    label: str
    percentage: Decimal | None = None
    amount_cents: int = Field(..., ge=0)
    due_trigger: str
    description: str | None = None


class PayTermCreate(BaseModel):
    """A single manually entered installment."""

    project_ref: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    estimate_id: UUID | None = None
    due_trigger: str = Field("Milestone", max_length=100)
    description: str | None = Field(None, max_length=1000)
    due_date: date | None = None


class PayTermUpdate(BaseModel):
    """
    Edits to a pending term. None keeps the current value.

    Setting amount_cents turns a percentage term into a fixed-amount term.
    """

    label: str | None = Field(None, min_length=1, max_length=200)
    amount_cents: int | None = Field(None, ge=0)
    due_trigger: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=1000)
    due_date: date | None = None


class PayTerm(BaseModel):
    """Full pay term entity as stored."""

    id: UUID
    project_ref: str
    estimate_id: UUID | None
    kind: PayTermKind
    label: str
    percentage: Decimal | None
    amount_cents: int = Field(..., ge=0)
    due_trigger: str
    description: str | None
    due_date: date | None
    status: PayTermStatus
    paid_on: date | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    def as_line_item(self, sort_order: int = 0) -> LineItem:
        """Single invoice line for this installment."""
        return LineItem(
            description=self.label,
            quantity=Decimal(1),
            unit_rate_cents=self.amount_cents,
            sort_order=sort_order,
        )


# =============================================================================
# ALLOCATION POLICIES
# =============================================================================


class FullOnAcceptance(BaseModel):
    """One term: 100% of the estimate total due on acceptance."""

    kind: Literal["full_on_acceptance"] = "full_on_acceptance"


class SplitOnPermit(BaseModel):
    """Two terms: a deposit due now and the remainder before permit submittal."""

    kind: Literal["split_on_permit"] = "split_on_permit"
    first_pct: Decimal = Field(Decimal(75), gt=0, lt=100)
    second_pct: Decimal = Field(Decimal(25), gt=0, lt=100)

    @model_validator(mode="after")
    def percentages_sum_to_100(self) -> "SplitOnPermit":
        if self.first_pct + self.second_pct != 100:
            raise ValueError(
                f"Split percentages must sum to 100, got {self.first_pct} + {self.second_pct}"
            )
        return self


class CustomTermInput(BaseModel):
    """One caller-defined milestone term."""

    label: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    due_trigger: str = Field("Milestone", max_length=100)
    description: str | None = Field(None, max_length=1000)


class CustomTerms(BaseModel):
    """Arbitrary fixed-amount terms. No percentages and no summing guarantee."""

    kind: Literal["custom"] = "custom"
    terms: list[CustomTermInput] = Field(..., min_length=1)


AllocationPolicy = Annotated[
    Union[FullOnAcceptance, SplitOnPermit, CustomTerms],
    Field(discriminator="kind"),
]
