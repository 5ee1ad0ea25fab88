"""Shared test fixtures for the billing test suite."""

import os
from decimal import Decimal
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
from clients.vault_client import reset_vault_cache
reset_vault_cache()

from api.app import build_services
from core.config import BillingConfig
from core.models import EstimateCreate
from core.store.memory import InMemoryBillingStore
from tests.factories import ISSUED, PROJECT, line


# =============================================================================
# STORE & SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def store() -> InMemoryBillingStore:
    """Fresh in-memory store per test."""
    return InMemoryBillingStore()


@pytest.fixture
def services(store, config) -> dict:
    return build_services(store, config)


@pytest.fixture
def audit(services):
    return services["audit"]


@pytest.fixture
def event_bus(services):
    return services["event_bus"]


@pytest.fixture
def estimate_service(services):
    return services["estimate"]


@pytest.fixture
def invoice_service(services):
    return services["invoice"]


@pytest.fixture
def pay_term_service(services):
    return services["pay_term"]


@pytest.fixture
def ledger(services):
    return services["payment"]


@pytest.fixture
def report_service(services):
    return services["report"]


@pytest.fixture
def contract_service(services):
    return services["contract"]


@pytest.fixture
def published(event_bus):
    """Every event published during the test, in order."""
    events = []
    for name in (
        "EstimateApproved", "InvoiceSent", "InvoicePaid", "InvoiceCancelled",
        "PaymentPosted", "PaymentVoided", "ContractSigned",
    ):
        event_bus.subscribe(name, events.append)
    return events


# =============================================================================
# DOCUMENT FIXTURES
# =============================================================================


@pytest.fixture
def make_estimate(estimate_service):
    """Factory: create an estimate with the given lines (default one $100 line)."""

    def _make(*lines, project_ref=PROJECT, tax_rate=Decimal("0.0875"), **kwargs):
        return estimate_service.create(EstimateCreate(
            project_ref=project_ref,
            date_issued=ISSUED,
            tax_rate=tax_rate,
            line_items=list(lines) or [line()],
            **kwargs,
        ))

    return _make


@pytest.fixture
def scenario_estimate(make_estimate):
    """10 x $50.00 at 8.75%: subtotal 500.00, tax 43.75, total 543.75."""
    return make_estimate(line("Drywall sheets", "10", 5000))


@pytest.fixture
def scenario_invoice(estimate_service, scenario_estimate):
    return estimate_service.convert_to_invoice(scenario_estimate.id, date_issued=ISSUED)


# =============================================================================
# POSTGRES FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def pg_client():
    """Session-scoped PostgresClient. Skips when DATABASE_URL is not set."""
    url = os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url)
    client.execute((Path(__file__).parent.parent / "schema.sql").read_text())
    yield client
    client.close()


@pytest.fixture
def pg_store(pg_client):
    """PostgresBillingStore over freshly truncated tables."""
    from core.store.postgres import PostgresBillingStore

    pg_client.execute("""
        TRUNCATE audit_log, payments, invoice_line_items, invoices,
                 pay_terms, estimate_line_items, estimates, contracts
        CASCADE
    """)
    return PostgresBillingStore(pg_client)
