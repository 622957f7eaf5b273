"""
Fulfillment Service Data Models

Result envelopes returned by every exposed operation.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from core.errors import EngineError, ErrorKind

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Structured error: kind, human message and offending fields"""
    kind: ErrorKind
    message: str
    fields: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_error(cls, error: EngineError) -> "ErrorDetail":
        return cls(
            kind=error.kind,
            message=error.message,
            fields=error.fields,
            details=error.details,
        )


class OperationResult(BaseModel, Generic[T]):
    """Success payload or structured error; business-rule failures are values"""
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None
    message: Optional[str] = None
