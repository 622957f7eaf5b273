"""
Order Service Clients

HTTP clients for services the order service depends on
"""

from .catalog_client import CatalogClient

__all__ = ["CatalogClient"]
