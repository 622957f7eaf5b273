"""
Catalog Service Client for Order Service

Read-only product and combo lookups. Prices returned here are copied into
order lines at creation time and never re-read.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config import CatalogConfig

from ..models import CatalogCombo, CatalogProduct

logger = logging.getLogger(__name__)


class CatalogClient:
    """Client for the catalog service"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        config: Optional[CatalogConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or CatalogConfig.from_env()
        self.base_url = (base_url or self.config.catalog_service_url).rstrip('/')
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )
        logger.info(f"CatalogClient initialized with base_url: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        data = await self._get(f"/api/v1/catalog/products/{product_id}")
        if data is None:
            return None
        data.setdefault("product_id", product_id)
        return CatalogProduct.model_validate(data)

    async def get_combo(self, combo_id: str) -> Optional[CatalogCombo]:
        data = await self._get(f"/api/v1/catalog/combos/{combo_id}")
        if data is None:
            return None
        data.setdefault("combo_id", combo_id)
        return CatalogCombo.model_validate(data)

    async def _get(self, path: str) -> Optional[Dict[str, Any]]:
        """GET a catalog resource; None on 404, retried on transport errors"""
        retrying = retry(
            stop=stop_after_attempt(max(self.config.retry_attempts, 1)),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            response = await retrying(self.client.get)(path)
        except httpx.TransportError as e:
            logger.error(f"Catalog unreachable for {path}: {e}")
            raise

        if response.status_code == 404:
            logger.debug(f"Catalog resource not found: {path}")
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Catalog request failed for {path}: {e.response.status_code}")
            raise
        return response.json()
