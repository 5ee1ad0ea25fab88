"""
Handler for InvoicePaid events.

When an invoice built from pay terms is paid in full, every source term is
marked paid as of the invoice's latest payment date.
"""

import logging
from typing import Callable

from core.events import InvoicePaid
from core.models import PayTermStatus
from utils.timezone import today_utc

logger = logging.getLogger(__name__)


def handle_invoice_paid(pay_term_service, payment_ledger) -> Callable:
    """
    Factory that returns an InvoicePaid handler.

    Args:
        pay_term_service: PayTermService instance
        payment_ledger: PaymentLedger instance, for the last payment date

    Returns:
        Handler callable that settles the invoice's pay terms
    """

    def handler(event: InvoicePaid):
        invoice = event.invoice
        if not invoice.pay_term_ids:
            return

        payments = payment_ledger.list_for_invoice(invoice.id)
        paid_on = payments[0].payment_date if payments else today_utc()

        for term_id in invoice.pay_term_ids:
            term = pay_term_service.get_by_id(term_id)
            if term is None:
                logger.warning("Pay term %s on invoice %s no longer exists", term_id, invoice.invoice_number)
                continue
            if term.status == PayTermStatus.PAID:
                logger.info("Pay term %s already paid", term_id)
                continue
            pay_term_service.mark_paid(term_id, paid_on)

    return handler
