"""
Engine Error Hierarchy

Business-rule and lifecycle errors raised by the services. The outer
FulfillmentService turns every EngineError into a structured result value;
anything that is not an EngineError (storage I/O, programming errors)
propagates unchanged.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Structured error kinds reported to callers"""
    VALIDATION = "ValidationError"
    ILLEGAL_STATE = "IllegalStateError"
    STATE_TRANSITION = "StateTransitionError"
    STOCK_EXHAUSTED = "StockExhaustedError"
    RESERVATION_EXPIRED = "ReservationExpiredError"
    CONCURRENT_MODIFICATION = "ConcurrentModificationError"
    NOT_FOUND = "NotFoundError"
    TIMEOUT = "TimeoutError"


class Violation(BaseModel):
    """A single violated rule, tied to the offending field"""
    field: str
    message: str


class EngineError(Exception):
    """Base exception for engine errors"""

    kind: ErrorKind = ErrorKind.ILLEGAL_STATE

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])
        self.details = dict(details or {})


class ValidationError(EngineError):
    """Malformed or rule-violating input; carries every violation found"""

    kind = ErrorKind.VALIDATION

    def __init__(self, violations: List[Violation], message: Optional[str] = None):
        self.violations = list(violations)
        if message is None:
            message = "; ".join(f"{v.field}: {v.message}" for v in self.violations)
        super().__init__(
            message,
            fields=[v.field for v in self.violations],
            details={"violations": [v.model_dump() for v in self.violations]},
        )


class IllegalStateError(EngineError):
    """Operation not valid in the current lifecycle state"""

    kind = ErrorKind.ILLEGAL_STATE


class StateTransitionError(IllegalStateError):
    """Transition not present in the state machine's transition table"""

    kind = ErrorKind.STATE_TRANSITION

    def __init__(self, current: str, target: str, entity: str = "order"):
        super().__init__(
            f"Cannot change {entity} from {current} to {target}",
            fields=["state"],
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target


class NoTableAvailableError(IllegalStateError):
    """No free table can seat the party"""

    def __init__(self, party_size: int, estimated_wait_minutes: int):
        super().__init__(
            f"No table available for {party_size} guests; estimated wait {estimated_wait_minutes} minutes",
            fields=["party_size"],
            details={"party_size": party_size, "estimated_wait_minutes": estimated_wait_minutes},
        )
        self.party_size = party_size
        self.estimated_wait_minutes = estimated_wait_minutes


class StockExhaustedError(EngineError):
    """Requested quantities are not available"""

    kind = ErrorKind.STOCK_EXHAUSTED

    def __init__(self, message: str, product_ids: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, fields=product_ids, details=details)
        self.product_ids = list(product_ids or [])


class ReservationExpiredError(EngineError):
    """Stock hold passed its TTL before being confirmed"""

    kind = ErrorKind.RESERVATION_EXPIRED

    def __init__(self, reservation_id: str):
        super().__init__(
            f"Reservation {reservation_id} has expired",
            fields=["reservation_id"],
            details={"reservation_id": reservation_id},
        )
        self.reservation_id = reservation_id


class ConcurrentModificationError(EngineError):
    """Write based on a stale version of an entity"""

    kind = ErrorKind.CONCURRENT_MODIFICATION


class NotFoundError(EngineError):
    """Referenced entity does not exist"""

    kind = ErrorKind.NOT_FOUND


class OperationTimeoutError(EngineError):
    """Operation did not finish before its deadline"""

    kind = ErrorKind.TIMEOUT
