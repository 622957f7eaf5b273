"""
Shared Test Fixtures

Centralized factories and generators used across all test layers.

Structure:
    - common.py: Base ID generators
    - engine_fixtures.py: Order requests, lines and the standard dining room
"""

from .common import (
    make_staff_id,
    make_customer_id,
    make_product_id,
    make_table_id,
)

from .engine_fixtures import (
    STANDARD_PRODUCTS,
    STANDARD_TABLES,
    seed_catalog,
    seed_inventory,
    seed_tables,
    make_item,
    make_combo_item,
    make_create_request,
    make_line,
    make_order,
)

__all__ = [
    "make_staff_id",
    "make_customer_id",
    "make_product_id",
    "make_table_id",
    "STANDARD_PRODUCTS",
    "STANDARD_TABLES",
    "seed_catalog",
    "seed_inventory",
    "seed_tables",
    "make_item",
    "make_combo_item",
    "make_create_request",
    "make_line",
    "make_order",
]
