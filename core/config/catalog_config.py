#!/usr/bin/env python3
"""Catalog collaborator configuration"""
import os
from dataclasses import dataclass


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


@dataclass
class CatalogConfig:
    """Menu/catalog service endpoint"""
    catalog_service_url: str = "http://localhost:8215"
    request_timeout_seconds: float = 5.0
    retry_attempts: int = 3

    @classmethod
    def from_env(cls) -> 'CatalogConfig':
        """Load catalog config from environment variables"""
        return cls(
            catalog_service_url=os.getenv("CATALOG_SERVICE_URL", "http://localhost:8215"),
            request_timeout_seconds=_float(os.getenv("CATALOG_REQUEST_TIMEOUT_SECONDS", ""), 5.0),
            retry_attempts=_int(os.getenv("CATALOG_RETRY_ATTEMPTS", ""), 3),
        )
