"""
Payment ledger.

The only code that changes an invoice's paid amount. Each post, void or
amend writes the payment row and the invoice's paid_amount_cents in one
store transaction, so 0 <= paid <= total holds after every call. Status is
derived from the new totals; nothing here sets it.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID, uuid4

from core import money
from core.audit import AuditLogger, AuditAction, compute_changes
from core.errors import (
    InvalidAmountError, InvalidStateError, NotFoundError, OverpaymentError, ValidationError,
)
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentPosted, PaymentVoided
from core.models import Invoice, InvoiceStatus, Payment, PaymentSummary
from core.store.base import BillingStore
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)


def _check_amount(amount_cents: int) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise TypeError(f"Payment amount must be integer cents, got {type(amount_cents).__name__}")
    if amount_cents <= 0:
        raise InvalidAmountError(amount_cents)


class PaymentLedger:
    """Posts, voids and amends payments against invoices."""

    def __init__(self, store: BillingStore, audit: AuditLogger, event_bus: EventBus):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus

    def _require_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def _require_payment(self, payment_id: UUID) -> Payment:
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    def _apply(self, current: Invoice, paid_amount_cents: int) -> Invoice:
        """Store the invoice with a new paid amount and audit the change."""
        now = now_utc()
        changes = {"paid_amount_cents": paid_amount_cents, "updated_at": now}
        if current.sent_at is None:
            # Money received means the invoice was issued.
            changes["sent_at"] = now

        updated = current.revise(**changes)
        self.store.update_invoice(updated)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=current.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(
                current.model_dump(mode="json", exclude={"line_items"}),
                updated.model_dump(mode="json", exclude={"line_items"})
            )
        )
        return updated

    def _publish_paid(self, before: Invoice, after: Invoice) -> None:
        if before.status != InvoiceStatus.PAID and after.status == InvoiceStatus.PAID:
            logger.info("Invoice %s paid in full", after.invoice_number)
            self.event_bus.publish(InvoicePaid.create(invoice=after))

    def post(
        self,
        invoice_id: UUID,
        amount_cents: int,
        payment_date: date | None = None,
        method: str = "Check",
        reference: str | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Record a payment against an invoice.

        Args:
            invoice_id: Invoice being paid
            amount_cents: Payment amount in cents
            payment_date: Date received (defaults to today)
            method: Check, Cash, Card, ACH, ...
            reference: Check number or transaction id
            notes: Free text

        Returns:
            Invoice snapshot after the payment

        Raises:
            InvalidAmountError: If amount is zero or negative
            NotFoundError: If invoice not found
            InvalidStateError: If the invoice is cancelled
            OverpaymentError: If amount exceeds the balance due
        """
        _check_amount(amount_cents)

        with self.store.transaction():
            current = self._require_invoice(invoice_id)
            if current.status == InvoiceStatus.CANCELLED:
                raise InvalidStateError(f"Invoice {current.invoice_number} is cancelled")
            if money.compare(amount_cents, current.balance_due_cents) > 0:
                raise OverpaymentError(amount_cents, current.balance_due_cents)

            now = now_utc()
            payment = Payment(
                id=uuid4(),
                invoice_id=invoice_id,
                amount_cents=amount_cents,
                payment_date=payment_date or today_utc(),
                method=method,
                reference=reference,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            self.store.insert_payment(payment)

            self.audit.log_change(
                entity_type="payment",
                entity_id=payment.id,
                action=AuditAction.CREATE,
                changes={"created": payment.model_dump(mode="json")}
            )

            updated = self._apply(current, money.add(current.paid_amount_cents, amount_cents))

        logger.info(
            "Posted %s to invoice %s, balance %s",
            money.format_cents(amount_cents),
            updated.invoice_number,
            money.format_cents(updated.balance_due_cents),
        )
        self.event_bus.publish(PaymentPosted.create(payment=payment, invoice=updated))
        self._publish_paid(current, updated)
        return updated

    def void(self, payment_id: UUID) -> Invoice:
        """
        Remove a payment and take its amount back off the invoice.

        Returns:
            Invoice snapshot after the void

        Raises:
            NotFoundError: If payment not found
        """
        with self.store.transaction():
            payment = self._require_payment(payment_id)
            current = self._require_invoice(payment.invoice_id)

            self.store.delete_payment(payment_id)
            self.audit.log_change(
                entity_type="payment",
                entity_id=payment_id,
                action=AuditAction.DELETE,
                changes={"deleted": payment.model_dump(mode="json")}
            )

            updated = self._apply(current, money.subtract(current.paid_amount_cents, payment.amount_cents))

        logger.info("Voided payment %s on invoice %s", payment_id, updated.invoice_number)
        self.event_bus.publish(PaymentVoided.create(payment=payment, invoice=updated))
        return updated

    def amend(
        self,
        payment_id: UUID,
        amount_cents: int | None = None,
        payment_date: date | None = None,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Change a recorded payment.

        The new amount is checked against the balance as if the old payment
        had never been made. Fields left as None keep their current value.

        Returns:
            Invoice snapshot after the amendment

        Raises:
            NotFoundError: If payment not found
            InvalidAmountError: If the new amount is zero or negative
            OverpaymentError: If the new amount exceeds balance due + old amount
        """
        if amount_cents is not None:
            _check_amount(amount_cents)

        with self.store.transaction():
            payment = self._require_payment(payment_id)
            current = self._require_invoice(payment.invoice_id)

            new_amount = payment.amount_cents if amount_cents is None else amount_cents
            available = money.add(current.balance_due_cents, payment.amount_cents)
            if money.compare(new_amount, available) > 0:
                raise OverpaymentError(new_amount, available)

            changes = {"amount_cents": new_amount, "updated_at": now_utc()}
            for field, value in (
                ("payment_date", payment_date),
                ("method", method),
                ("reference", reference),
                ("notes", notes),
            ):
                if value is not None:
                    changes[field] = value

            amended = Payment.model_validate({**payment.model_dump(), **changes})
            self.store.update_payment(amended)

            self.audit.log_change(
                entity_type="payment",
                entity_id=payment_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    payment.model_dump(mode="json"),
                    amended.model_dump(mode="json")
                )
            )

            paid = money.add(money.subtract(current.paid_amount_cents, payment.amount_cents), new_amount)
            updated = current if paid == current.paid_amount_cents else self._apply(current, paid)

        self._publish_paid(current, updated)
        return updated

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        return self.store.get_payment(payment_id)

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        """
        Payments on an invoice, most recent first.

        Raises:
            NotFoundError: If invoice not found
        """
        self._require_invoice(invoice_id)
        return self.store.list_payments(invoice_id=invoice_id)

    def summarize(self, start: date | None = None, end: date | None = None) -> PaymentSummary:
        """
        Count, total, average, smallest and largest payment in a date range.

        Both bounds are inclusive; either may be omitted.

        Raises:
            ValidationError: If start is after end
        """
        if start is not None and end is not None and start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")

        amounts = [p.amount_cents for p in self.store.list_payments(start=start, end=end)]
        total = sum(amounts)
        average = 0
        if amounts:
            average = int((Decimal(total) / len(amounts)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

        return PaymentSummary(
            start=start,
            end=end,
            count=len(amounts),
            total_cents=total,
            average_cents=average,
            min_cents=min(amounts, default=None),
            max_cents=max(amounts, default=None),
        )
