"""
Common/Shared Fixtures

Base ID generators used across multiple test layers.
"""
import uuid


def make_staff_id() -> str:
    """Generate a unique staff member ID"""
    return f"staff_test_{uuid.uuid4().hex[:8]}"


def make_customer_id() -> str:
    """Generate a unique customer ID"""
    return f"cust_test_{uuid.uuid4().hex[:8]}"


def make_product_id() -> str:
    """Generate a unique product ID"""
    return f"prod_test_{uuid.uuid4().hex[:8]}"


def make_table_id() -> str:
    """Generate a unique table ID"""
    return f"tbl_test_{uuid.uuid4().hex[:8]}"
