"""Typed exceptions for billing rule violations.

Every rejection the ledger makes is one of these. None of them is fatal:
the HTTP layer turns each into a structured error response.
"""


class BillingError(Exception):
    """Base class for all billing rule violations."""

    code = "BILLING_ERROR"


class ValidationError(BillingError):
    """Missing or invalid input, e.g. an invoice with no line items."""

    code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """A payment amount that is zero or negative."""

    code = "INVALID_AMOUNT"

    def __init__(self, amount_cents: int):
        self.amount_cents = amount_cents
        super().__init__(f"Payment amount must be positive, got {amount_cents} cents")


class OverpaymentError(BillingError):
    """Payment would push the paid amount past the invoice total."""

    code = "OVERPAYMENT"

    def __init__(self, amount_cents: int, balance_due_cents: int):
        self.amount_cents = amount_cents
        self.balance_due_cents = balance_due_cents
        super().__init__(
            f"Payment of {amount_cents} cents exceeds balance due of {balance_due_cents} cents"
        )


class InvalidStateError(BillingError):
    """Operation is not allowed in the document's current status."""

    code = "INVALID_STATE"


class NotFoundError(BillingError):
    """Referenced estimate, invoice, pay term or payment does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.replace('_', ' ').capitalize()} {entity_id} not found")


class ReferentialIntegrityError(BillingError):
    """Delete blocked because dependent records still exist."""

    code = "HAS_DEPENDENCIES"
