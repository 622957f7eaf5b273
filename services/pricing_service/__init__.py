"""
Pricing Service

Pure totals computation: subtotal, volume discount, tax (ITBIS) and total.
"""

from .models import AppliedDiscount, PricedLine, PricingLine, PricingResult
from .pricing_engine import PricingEngine

__all__ = [
    "AppliedDiscount",
    "PricedLine",
    "PricingLine",
    "PricingResult",
    "PricingEngine",
]
