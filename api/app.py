"""
Application wiring.

build_services() assembles the services over one store and subscribes the
event handlers; create_app() mounts them on a FastAPI app under /api.
"""

import logging

from fastapi import APIRouter, FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from core.handlers.invoice_paid_handler import handle_invoice_paid
from core.services.contract_service import ContractService
from core.services.estimate_service import EstimateService
from core.services.invoice_service import InvoiceService
from core.services.pay_term_service import PayTermService
from core.services.payment_ledger import PaymentLedger
from core.services.report_service import ReportService
from core.store.base import BillingStore

logger = logging.getLogger(__name__)


def build_services(store: BillingStore, config: BillingConfig | None = None) -> dict:
    """
    Construct every billing service over a store.

    Returns:
        Dict keyed by domain: estimate, invoice, pay_term, payment, report,
        contract, plus the shared audit logger and event bus.
    """
    config = config or BillingConfig()
    audit = AuditLogger(store)
    event_bus = EventBus()

    invoice = InvoiceService(store, audit, event_bus, config)
    estimate = EstimateService(store, audit, event_bus, config, invoice)
    pay_term = PayTermService(store, audit)
    payment = PaymentLedger(store, audit, event_bus)
    report = ReportService(store)
    contract = ContractService(store, audit, event_bus, config)

    event_bus.subscribe("InvoicePaid", handle_invoice_paid(pay_term, payment))

    return {
        "estimate": estimate,
        "invoice": invoice,
        "pay_term": pay_term,
        "payment": payment,
        "report": report,
        "contract": contract,
        "audit": audit,
        "event_bus": event_bus,
        "config": config,
    }


def create_billing_router(services: dict) -> APIRouter:
    """Read (/data) and mutation (/actions) routes for the billing services."""
    router = APIRouter()
    router.include_router(create_data_router(services))
    router.include_router(create_actions_router(services))
    return router


def create_app(store: BillingStore | None = None, config: BillingConfig | None = None) -> FastAPI:
    """
    FastAPI app over the given store.

    Without a store, connects to PostgreSQL using the URL from
    DATABASE_URL or Vault.
    """
    if store is None:
        from clients.postgres_client import PostgresClient
        from clients.vault_client import get_database_url
        from core.store.postgres import PostgresBillingStore

        store = PostgresBillingStore(PostgresClient(get_database_url()))

    services = build_services(store, config)

    app = FastAPI(title="Billing Ledger")
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(create_billing_router(services), prefix="/api")
    app.state.services = services

    logger.info("Billing API ready on %s", type(store).__name__)
    return app
