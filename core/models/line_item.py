"""Line item domain models.

Unit rates are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Quantities are Decimal so fractional units (2.5 hours)
are exact.
"""

from decimal import Decimal
from typing import Iterable, Iterator

from pydantic import BaseModel, Field, RootModel, computed_field

from core import money


class LineItemInput(BaseModel):
    """A line item as supplied by a caller, before it is placed in a set."""

    description: str = Field("", max_length=500)
    quantity: Decimal = Field(Decimal(1), ge=0)
    unit_rate_cents: int = Field(..., ge=0)
    notes: str | None = Field(None, max_length=1000)

    @property
    def full_description(self) -> str:
        """Description with any per-line notes appended."""
        if self.notes and self.notes.strip():
            return f"{self.description}: {self.notes.strip()}"
        return self.description


class LineItem(BaseModel):
    """One priced line on an estimate or invoice."""

    description: str
    quantity: Decimal = Field(..., ge=0)
    unit_rate_cents: int = Field(..., ge=0)
    sort_order: int = Field(0, ge=0)

    model_config = {"from_attributes": True, "frozen": True}

    @computed_field
    @property
    def line_total_cents(self) -> int:
        """quantity x unit rate, rounded half-up to the cent."""
        return money.multiply_by_quantity(self.unit_rate_cents, self.quantity)


class LineItemSet(RootModel[list[LineItem]]):
    """
    Ordered line items of one document.

    Order is the printed order and is carried by sort_order. Sets are only
    ever replaced wholesale; there is no per-line patching.
    """

    root: list[LineItem] = Field(default_factory=list)

    @classmethod
    def from_inputs(cls, items: Iterable[LineItemInput]) -> "LineItemSet":
        """Build a set from caller input, numbering lines from 0."""
        return cls([
            LineItem(
                description=item.full_description,
                quantity=item.quantity,
                unit_rate_cents=item.unit_rate_cents,
                sort_order=index,
            )
            for index, item in enumerate(items)
        ])

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> LineItem:
        return self.root[index]

    @property
    def subtotal_cents(self) -> int:
        """Sum of per-line totals. Zero-quantity lines count as 0 but stay in the set."""
        total = 0
        for item in self.root:
            total = money.add(total, item.line_total_cents)
        return total

    def reindex(self) -> "LineItemSet":
        """Return a copy with dense 0-based sort_order, keeping the current order."""
        ordered = sorted(self.root, key=lambda item: item.sort_order)
        return LineItemSet([
            item.model_copy(update={"sort_order": index})
            for index, item in enumerate(ordered)
        ])

    def copy_for_document(self) -> "LineItemSet":
        """Independent copy for another document (estimate lines -> invoice lines)."""
        return LineItemSet([item.model_copy() for item in self.reindex()])
