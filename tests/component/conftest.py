"""
Component Test Layer Configuration

Real services wired against MemoryStore, with the catalog, event bus,
notification sink and clock mocked.

Usage:
    pytest tests/component -v
"""
import os
import sys

import pytest
import pytest_asyncio

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from core.config import EngineConfig
from services.fulfillment_service import FulfillmentService, MemoryStore
from services.order_service import OrderService
from services.pricing_service import PricingEngine
from services.stock_service import StockLedger
from services.table_service import TableService
from tests.component.mocks import MockCatalogClient, MockEventBus, MockNotifier, MutableClock
from tests.fixtures import seed_catalog, seed_inventory, seed_tables


@pytest.fixture
def clock():
    """Clock pinned to 2026-03-14 12:00 UTC"""
    return MutableClock()


@pytest.fixture
def mock_event_bus():
    """Provide MockEventBus"""
    return MockEventBus()


@pytest.fixture
def mock_notifier():
    """Provide MockNotifier"""
    return MockNotifier()


@pytest.fixture
def mock_catalog():
    """Catalog with the standard menu"""
    catalog = MockCatalogClient()
    seed_catalog(catalog)
    return catalog


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def store():
    """MemoryStore with the standard inventory and dining room"""
    memory_store = MemoryStore()
    seed_inventory(memory_store)
    seed_tables(memory_store)
    return memory_store


@pytest.fixture
def pricing_engine(engine_config):
    return PricingEngine(engine_config.pricing)


@pytest.fixture
def stock_ledger(store, engine_config, mock_event_bus, clock):
    return StockLedger(store, config=engine_config, event_bus=mock_event_bus, clock=clock)


@pytest.fixture
def table_service(store, engine_config, mock_event_bus, clock):
    return TableService(store, config=engine_config, event_bus=mock_event_bus, clock=clock)


@pytest_asyncio.fixture
async def order_service(store, stock_ledger, table_service, pricing_engine, mock_catalog, mock_notifier,
                        mock_event_bus, engine_config, clock):
    service = OrderService(
        store=store,
        stock_ledger=stock_ledger,
        table_service=table_service,
        pricing_engine=pricing_engine,
        catalog_client=mock_catalog,
        notifier=mock_notifier,
        event_bus=mock_event_bus,
        config=engine_config,
        clock=clock,
    )
    yield service
    await service.flush_notifications(timeout=1.0)


@pytest.fixture
def fulfillment(order_service, table_service, stock_ledger, pricing_engine, engine_config):
    return FulfillmentService(
        order_service=order_service,
        table_service=table_service,
        stock_ledger=stock_ledger,
        pricing_engine=pricing_engine,
        config=engine_config,
    )
