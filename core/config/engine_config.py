#!/usr/bin/env python3
"""Pricing and fulfillment engine configuration

Rates, thresholds and time windows are injected into the services instead of
living as module constants, so jurisdictions and policies can be swapped.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation


def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


def _decimal(val: str, default: str) -> Decimal:
    try:
        return Decimal(val) if val else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


@dataclass(frozen=True)
class PricingConfig:
    """Tax and discount rules for the pricing engine"""
    tax_rate: Decimal = Decimal("0.18")
    tax_name: str = "ITBIS"
    volume_discount_threshold: Decimal = Decimal("1000")
    volume_discount_rate: Decimal = Decimal("0.05")
    volume_discount_rule: str = "VOLUME_DISCOUNT"
    currency: str = "DOP"
    minor_unit: Decimal = Decimal("0.01")

    @classmethod
    def from_env(cls) -> 'PricingConfig':
        """Load pricing config from environment variables"""
        return cls(
            tax_rate=_decimal(os.getenv("PRICING_TAX_RATE", ""), "0.18"),
            tax_name=os.getenv("PRICING_TAX_NAME", "ITBIS"),
            volume_discount_threshold=_decimal(os.getenv("PRICING_VOLUME_DISCOUNT_THRESHOLD", ""), "1000"),
            volume_discount_rate=_decimal(os.getenv("PRICING_VOLUME_DISCOUNT_RATE", ""), "0.05"),
            volume_discount_rule=os.getenv("PRICING_VOLUME_DISCOUNT_RULE", "VOLUME_DISCOUNT"),
            currency=os.getenv("PRICING_CURRENCY", "DOP"),
            minor_unit=_decimal(os.getenv("PRICING_MINOR_UNIT", ""), "0.01"),
        )


@dataclass(frozen=True)
class EngineConfig:
    """Time windows and table/stock policies"""

    # Stock reservations
    reservation_ttl_minutes: int = 15
    low_stock_margin: int = 10

    # Orders
    modification_window_minutes: int = 10
    default_timeout_seconds: float = 5.0

    # Tables
    rotation_threshold_minutes: int = 180
    default_occupancy_minutes: int = 90
    min_wait_minutes: int = 15
    large_party_size: int = 6
    large_party_extra_wait_minutes: int = 30
    location_match_bonus: int = 10

    pricing: PricingConfig = field(default_factory=PricingConfig)

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Load engine config from environment variables"""
        return cls(
            reservation_ttl_minutes=_int(os.getenv("ENGINE_RESERVATION_TTL_MINUTES", ""), 15),
            low_stock_margin=_int(os.getenv("ENGINE_LOW_STOCK_MARGIN", ""), 10),
            modification_window_minutes=_int(os.getenv("ENGINE_MODIFICATION_WINDOW_MINUTES", ""), 10),
            default_timeout_seconds=_float(os.getenv("ENGINE_DEFAULT_TIMEOUT_SECONDS", ""), 5.0),
            rotation_threshold_minutes=_int(os.getenv("ENGINE_ROTATION_THRESHOLD_MINUTES", ""), 180),
            default_occupancy_minutes=_int(os.getenv("ENGINE_DEFAULT_OCCUPANCY_MINUTES", ""), 90),
            min_wait_minutes=_int(os.getenv("ENGINE_MIN_WAIT_MINUTES", ""), 15),
            large_party_size=_int(os.getenv("ENGINE_LARGE_PARTY_SIZE", ""), 6),
            large_party_extra_wait_minutes=_int(os.getenv("ENGINE_LARGE_PARTY_EXTRA_WAIT_MINUTES", ""), 30),
            location_match_bonus=_int(os.getenv("ENGINE_LOCATION_MATCH_BONUS", ""), 10),
            pricing=PricingConfig.from_env(),
        )
