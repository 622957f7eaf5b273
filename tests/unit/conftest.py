"""
Unit Test Layer Configuration

Pure logic only: pricing, scoring, models, configuration.

Usage:
    pytest tests/unit -v
    pytest -m unit -v
"""
import os
import sys

import pytest

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from core.config import PricingConfig
from services.pricing_service import PricingEngine


@pytest.fixture
def pricing_config():
    """Default ITBIS pricing rules"""
    return PricingConfig()


@pytest.fixture
def pricing_engine(pricing_config):
    return PricingEngine(pricing_config)
