"""Billing configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


class BillingConfig(BaseModel):
    """
    Billing configuration.

    Passed explicitly into the services that create documents. Defaults apply
    only when a document is created; changing the config never alters
    existing estimates or invoices.
    """

    # Document numbering
    estimate_prefix: str = Field(
        default="EST",
        description="Prefix for estimate numbers (EST-1150)",
        min_length=1,
        max_length=10,
        pattern=r"^[A-Z0-9]+$",
    )
    invoice_prefix: str = Field(
        default="INV",
        description="Prefix for invoice numbers (INV-1150)",
        min_length=1,
        max_length=10,
        pattern=r"^[A-Z0-9]+$",
    )
    estimate_number_floor: int = Field(
        default=1150,
        description="Lowest estimate number ever issued",
        ge=1,
    )
    invoice_number_floor: int = Field(
        default=1150,
        description="Lowest invoice number ever issued",
        ge=1,
    )
    contract_prefix: str = Field(
        default="CON",
        description="Prefix for contract numbers (CON-0001)",
        min_length=1,
        max_length=10,
        pattern=r"^[A-Z0-9]+$",
    )
    contract_number_floor: int = Field(
        default=1,
        description="Lowest contract number ever issued",
        ge=1,
    )

    # Tax and terms
    default_tax_rate: Decimal = Field(
        default=Decimal("0.0875"),
        description="Tax rate used when a new estimate or invoice does not supply one",
        ge=0,
        le=1,
    )
    payment_terms_days: int = Field(
        default=30,
        description="Days from issue date to due date when no due date is given",
        ge=0,
        le=365,
    )
    estimate_valid_days: int = Field(
        default=30,
        description="Days an estimate stays valid when no valid-until date is given",
        ge=1,
        le=365,
    )
