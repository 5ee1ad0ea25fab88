"""Core domain models."""

from core.models.line_item import LineItem, LineItemInput, LineItemSet
from core.models.estimate import Estimate, EstimateCreate, EstimateUpdate, EstimateStatus
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceStatus, derive_invoice_status,
)
from core.models.payment import Payment, PaymentCreate, PaymentSummary, PaymentUpdate
from core.models.pay_term import (
    PayTerm, PayTermCreate, PayTermDraft, PayTermKind, PayTermStatus, PayTermUpdate,
    AllocationPolicy, FullOnAcceptance, SplitOnPermit, CustomTerms, CustomTermInput,
)
from core.models.report import AgingRow, InvoiceSummary, OverdueInvoice
from core.models.contract import Contract, ContractCreate, ContractStatus

__all__ = [
    # LineItem
    "LineItem", "LineItemInput", "LineItemSet",
    # Estimate
    "Estimate", "EstimateCreate", "EstimateUpdate", "EstimateStatus",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStatus", "derive_invoice_status",
    # Payment
    "Payment", "PaymentCreate", "PaymentSummary", "PaymentUpdate",
    # PayTerm
    "PayTerm", "PayTermCreate", "PayTermDraft", "PayTermKind", "PayTermStatus", "PayTermUpdate",
    "AllocationPolicy", "FullOnAcceptance", "SplitOnPermit", "CustomTerms", "CustomTermInput",
    # Reports
    "AgingRow", "InvoiceSummary", "OverdueInvoice",
    # Contract
    "Contract", "ContractCreate", "ContractStatus",
]
