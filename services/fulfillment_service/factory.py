"""
Fulfillment Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that wires the services together.

Usage:
    from services.fulfillment_service.factory import create_fulfillment_service
    service = create_fulfillment_service(store, catalog_client=catalog)
"""
from typing import Optional

from core.clock import Clock
from core.config import EngineConfig, get_settings
from services.order_service import OrderService
from services.order_service.events import EventBusNotificationSink
from services.pricing_service import PricingEngine
from services.stock_service import StockLedger
from services.table_service import TableService

from .fulfillment_service import FulfillmentService


def create_fulfillment_service(
    store=None,
    catalog_client=None,
    notifier=None,
    event_bus=None,
    config: Optional[EngineConfig] = None,
    clock: Optional[Clock] = None,
) -> FulfillmentService:
    """
    Create FulfillmentService with all engine components.

    Args:
        store: Object implementing the order, table and inventory store
            protocols (defaults to a fresh MemoryStore)
        catalog_client: Catalog lookups (defaults to the HTTP CatalogClient)
        notifier: Notification sink (defaults to the event bus sink when an
            event bus is given)
        event_bus: Event bus for publishing events
        config: Engine configuration (defaults to settings from the environment)
        clock: Time source (defaults to UTC wall clock)

    Returns:
        Configured FulfillmentService instance
    """
    settings = get_settings()
    config = config or settings.engine

    if store is None:
        from .memory_store import MemoryStore
        store = MemoryStore()

    if catalog_client is None:
        # Import real client here (not at module level)
        from services.order_service.clients import CatalogClient
        catalog_client = CatalogClient(config=settings.catalog)

    if notifier is None and event_bus is not None:
        notifier = EventBusNotificationSink(event_bus)

    pricing = PricingEngine(config.pricing)
    stock = StockLedger(store, config=config, event_bus=event_bus, clock=clock)
    tables = TableService(store, config=config, event_bus=event_bus, clock=clock)
    orders = OrderService(
        store=store,
        stock_ledger=stock,
        table_service=tables,
        pricing_engine=pricing,
        catalog_client=catalog_client,
        notifier=notifier,
        event_bus=event_bus,
        config=config,
        clock=clock,
    )
    return FulfillmentService(
        order_service=orders,
        table_service=tables,
        stock_ledger=stock,
        pricing_engine=pricing,
        config=config,
    )
