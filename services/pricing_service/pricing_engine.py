"""
Pricing Engine

Pure computation of order totals. No state, no I/O: the same lines and the
same PricingConfig always produce an identical PricingResult.

    subtotal = sum(unit_price * quantity) - sum(line_discount)
    discount = volume discount when subtotal >= threshold
    tax      = (subtotal - discount) * tax_rate
    total    = subtotal - discount + tax

Every monetary amount is rounded half-up to the currency minor unit.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence

from core.config import PricingConfig

from .models import AppliedDiscount, PricedLine, PricingResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PricingEngine:
    """Totals calculator configured with tax and discount rules"""

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()

    def quantize(self, amount: Decimal) -> Decimal:
        """Round to the currency minor unit, half-up"""
        return Decimal(amount).quantize(self.config.minor_unit, rounding=ROUND_HALF_UP)

    def line_subtotal(self, line: PricedLine) -> Decimal:
        return self.quantize(Decimal(line.unit_price) * line.quantity - Decimal(line.discount))

    def compute_totals(self, lines: Iterable[PricedLine], apply_discounts: bool = True) -> PricingResult:
        """
        Compute subtotal, discount, tax and total for a set of lines

        Args:
            lines: Items exposing quantity, unit_price and discount
            apply_discounts: Whether order-level discount rules apply

        Returns:
            PricingResult with every amount rounded to the minor unit
        """
        gross = ZERO
        line_discounts = ZERO
        subtotal = ZERO
        for line in lines:
            gross += self.quantize(Decimal(line.unit_price) * line.quantity)
            line_discounts += self.quantize(Decimal(line.discount))
            subtotal += self.line_subtotal(line)

        applied: List[AppliedDiscount] = []
        discount = ZERO
        if apply_discounts:
            volume = self._volume_discount(subtotal)
            if volume is not None:
                applied.append(volume)
                discount += volume.amount

        taxable_base = subtotal - discount
        tax = self.quantize(taxable_base * self.config.tax_rate)
        total = taxable_base + tax

        result = PricingResult(
            gross=self.quantize(gross),
            line_discounts=self.quantize(line_discounts),
            subtotal=self.quantize(subtotal),
            discount=self.quantize(discount),
            taxable_base=self.quantize(taxable_base),
            tax=tax,
            total=self.quantize(total),
            tax_rate=self.config.tax_rate,
            tax_name=self.config.tax_name,
            currency=self.config.currency,
            applied_discounts=applied,
        )
        logger.debug(
            f"Totals computed - subtotal {result.subtotal}, discount {result.discount}, "
            f"{result.tax_name} {result.tax}, total {result.total} {result.currency}"
        )
        return result

    def apportion(self, amount: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
        """
        Split an amount by weights, rounding each share to the minor unit.

        The rounding remainder goes to the last share, so the shares always
        sum to ``amount`` exactly. No share exceeds what is left to allocate,
        which keeps every share of a non-negative amount non-negative. With
        all-zero weights the amount is split evenly.
        """
        if not weights:
            return []

        amount = self.quantize(amount)
        weights = [Decimal(w) for w in weights]
        total_weight = sum(weights, ZERO)
        if total_weight == ZERO:
            weights = [Decimal(1)] * len(weights)
            total_weight = Decimal(len(weights))

        shares: List[Decimal] = []
        allocated = ZERO
        for weight in weights[:-1]:
            share = min(self.quantize(amount * weight / total_weight), amount - allocated)
            shares.append(share)
            allocated += share
        shares.append(amount - allocated)
        return shares

    def _volume_discount(self, subtotal: Decimal) -> Optional[AppliedDiscount]:
        threshold = self.config.volume_discount_threshold
        if subtotal < threshold or self.config.volume_discount_rate <= ZERO:
            return None

        rate = self.config.volume_discount_rate
        return AppliedDiscount(
            rule=self.config.volume_discount_rule,
            description=f"Volume discount for orders of {threshold:,.2f} {self.config.currency} or more",
            rate=rate,
            amount=self.quantize(subtotal * rate),
        )
