"""API test fixtures: the real app over the in-memory store."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app


@pytest.fixture
def app(store, config):
    """Billing app with middleware, error handlers and /api routes."""
    return create_app(store, config)


@pytest.fixture
def services(app):
    """The app's own services, so fixtures and requests share one store."""
    return app.state.services


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def act(client):
    """POST an action and return the response."""

    def _act(domain: str, action: str, **data):
        return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})

    return _act
