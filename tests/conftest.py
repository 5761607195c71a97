"""Shared fixtures for redistributor tests."""

import pytest

from redistributor.core.settings import RedistributorSettings
from redistributor.store.memory import InMemoryConfigurationStore
from redistributor.webhooks.models import Destination, Endpoint


@pytest.fixture
def settings(tmp_path):
    """In-memory settings that never touch the working directory."""
    return RedistributorSettings(
        delivery_timeout_ms=200,
        store_backend="memory",
        outcome_log_backend="memory",
        database_path=str(tmp_path / "redistributor.db"),
        log_file=None,
    )


@pytest.fixture
def crm_store():
    """Store with an active 'crm' route (3 destinations) and an inactive 'orders' route."""
    store = InMemoryConfigurationStore()

    store.add_endpoint(Endpoint(id="ep-crm", slug="crm", name="CRM"))
    store.add_destination(Destination(
        id="dst-sales", name="Sales", url="https://sales.example.com/hook",
        endpoint_id="ep-crm", position=0,
    ))
    store.add_destination(Destination(
        id="dst-support", name="Support", url="https://support.example.com/hook",
        endpoint_id="ep-crm", position=1,
    ))
    store.add_destination(Destination(
        id="dst-archive", name="Archive", url="https://archive.example.com/hook",
        endpoint_id="ep-crm", position=2,
    ))

    store.add_endpoint(Endpoint(id="ep-orders", slug="orders", name="Orders", active=False))
    store.add_destination(Destination(
        id="dst-fulfilment", name="Fulfilment", url="https://fulfilment.example.com/hook",
        endpoint_id="ep-orders",
    ))
    return store
