"""
Pricing Service Data Models

Inputs and outputs of the pricing engine.
"""

from decimal import Decimal
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field, field_validator


class PricedLine(Protocol):
    """Anything with a quantity, a unit price and a line discount"""
    quantity: int
    unit_price: Decimal
    discount: Decimal


class PricingLine(BaseModel):
    """Plain line item for ad-hoc totals computation"""
    quantity: int = Field(..., ge=1, le=99)
    unit_price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator('discount')
    def validate_discount(cls, v, info):
        quantity = info.data.get('quantity')
        unit_price = info.data.get('unit_price')
        if quantity is not None and unit_price is not None and v > unit_price * quantity:
            raise ValueError('Discount exceeds the line amount')
        return v


class AppliedDiscount(BaseModel):
    """Order-level discount recorded with its rule name for audit"""
    rule: str
    description: str
    rate: Optional[Decimal] = None
    amount: Decimal


class PricingResult(BaseModel):
    """Totals for a set of lines"""
    gross: Decimal
    line_discounts: Decimal
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax: Decimal
    total: Decimal
    tax_rate: Decimal
    tax_name: str
    currency: str
    applied_discounts: List[AppliedDiscount] = []
