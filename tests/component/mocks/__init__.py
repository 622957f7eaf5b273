"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (event bus, catalog HTTP, notifications, time).
"""

from .catalog_mock import MockCatalogClient
from .clock_mock import MutableClock
from .event_bus_mock import MockEventBus
from .notifier_mock import MockNotifier

__all__ = [
    'MockCatalogClient',
    'MutableClock',
    'MockEventBus',
    'MockNotifier',
]
