"""
Core Module for the Back-of-House Engine

Shared building blocks used by every service package under ``services/``.

COMPONENTS:
    - config/: Dataclass configuration loaded from the environment (pricing, engine, catalog, logging)
    - errors.py: Error hierarchy shared by all services, with structured error kinds
    - events.py: Event envelope and event bus protocol for fire-and-forget notifications
    - clock.py: Timezone-aware clock helpers

USAGE:
    from core.config import get_settings
    from core.errors import ValidationError, Violation

    settings = get_settings()
"""

from .clock import utc_now
from .errors import (
    EngineError,
    ErrorKind,
    ValidationError,
    Violation,
    IllegalStateError,
    StateTransitionError,
    NoTableAvailableError,
    StockExhaustedError,
    ReservationExpiredError,
    ConcurrentModificationError,
    NotFoundError,
    OperationTimeoutError,
)

__all__ = [
    "utc_now",
    "EngineError",
    "ErrorKind",
    "ValidationError",
    "Violation",
    "IllegalStateError",
    "StateTransitionError",
    "NoTableAvailableError",
    "StockExhaustedError",
    "ReservationExpiredError",
    "ConcurrentModificationError",
    "NotFoundError",
    "OperationTimeoutError",
]

__version__ = "1.0.0"
