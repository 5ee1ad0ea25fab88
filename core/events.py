"""
Domain events for billing.

Immutable event objects that represent state changes in the billing domain.
A service publishes what happened after its transaction commits; handlers
react without the publisher knowing who's listening.

Event Categories:
- EstimateEvent: Estimate lifecycle (approved by conversion)
- InvoiceEvent: Invoice lifecycle (sent, paid, cancelled)
- PaymentEvent: Ledger mutations (posted, voided)
- ContractEvent: Contract lifecycle (signed)

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# ESTIMATE EVENTS
# =============================================================================


@dataclass(frozen=True)
class EstimateEvent(BillingEvent):
    """Events related to estimate lifecycle."""
    pass


@dataclass(frozen=True)
class EstimateApproved(EstimateEvent):
    """Estimate was approved by converting it into an invoice."""
    estimate: Any = None  # Estimate
    invoice: Any = None  # Invoice created from it

    @classmethod
    def create(cls, estimate: Any, invoice: Any) -> "EstimateApproved":
        return cls(estimate=estimate, invoice=invoice)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(BillingEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was issued to the client."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceSent":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice balance reached zero."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceCancelled(InvoiceEvent):
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCancelled":
        return cls(invoice=invoice)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(BillingEvent):
    """Events related to the payment ledger."""
    pass


@dataclass(frozen=True)
class PaymentPosted(PaymentEvent):
    """A payment was recorded against an invoice."""
    payment: Any = None
    invoice: Any = None  # Invoice snapshot after the payment

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentPosted":
        return cls(payment=payment, invoice=invoice)


@dataclass(frozen=True)
class PaymentVoided(PaymentEvent):
    """A payment was removed from an invoice's ledger."""
    payment: Any = None
    invoice: Any = None

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentVoided":
        return cls(payment=payment, invoice=invoice)


# =============================================================================
# CONTRACT EVENTS
# =============================================================================


@dataclass(frozen=True)
class ContractEvent(BillingEvent):
    """Events related to contract lifecycle."""
    pass


@dataclass(frozen=True)
class ContractSigned(ContractEvent):
    """The client signed a contract."""
    contract: Any = None  # Contract

    @classmethod
    def create(cls, contract: Any) -> "ContractSigned":
        return cls(contract=contract)
