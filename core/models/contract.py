"""Contract domain models.

A contract is the signed agreement for a project's work. It is numbered
like estimates and invoices and moves draft -> signed once. Signed contracts
are never deleted.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ContractStatus(str, Enum):
    """Contract lifecycle status."""

    DRAFT = "draft"
    SIGNED = "signed"


class ContractCreate(BaseModel):
    """Data required to create a contract."""

    project_ref: str = Field(..., min_length=1, max_length=100)
    contract_type: str = Field("Design Contract", min_length=1, max_length=100)
    amount_cents: int = Field(0, ge=0)
    notes: str | None = Field(None, max_length=5000)


class Contract(BaseModel):
    """Full contract entity as stored."""

    id: UUID
    contract_number: str
    project_ref: str
    contract_type: str
    amount_cents: int = Field(..., ge=0)
    status: ContractStatus
    signed_on: date | None = None
    signed_by: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_signed(self) -> bool:
        return self.status == ContractStatus.SIGNED
