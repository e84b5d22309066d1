# marketplace/services/catalog_client.py
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import requests
from requests import RequestException

from marketplace.domain.errors import ProductInactive, ProductNotFound, Unavailable
from marketplace.utils.retry import http_retry
from marketplace.utils.settings import CATALOG_SERVICE_URL, CATALOG_TIMEOUT_SECONDS
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogProduct:
    id: int
    price: Decimal
    seller_id: int
    is_active: bool = True
    title: str | None = None

    @classmethod
    def from_payload(cls, data: dict) -> "CatalogProduct":
        try:
            price = Decimal(str(data["price"]))
        except (KeyError, InvalidOperation) as e:
            raise Unavailable(f"Catalog returned an invalid price for product {data.get('id')}") from e
        if price < 0:
            raise Unavailable(f"Catalog returned a negative price for product {data.get('id')}")

        return cls(
            id=int(data["id"]),
            price=price,
            seller_id=int(data["seller_id"]),
            is_active=bool(data.get("is_active", True)),
            title=data.get("title"),
        )


class CatalogClient:
    """
    HTTP client for the external product catalog.

    Every call carries a timeout. Transport failures are retried and then
    surface as Unavailable, a missing product is ProductNotFound.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else CATALOG_TIMEOUT_SECONDS

    @http_retry()
    def _get_product(self, product_id: int) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"CatalogClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    @http_retry()
    def _post_sales(self, product_id: int, quantity: int) -> bool:
        url = f"{self.base_url}/products/{product_id}/sales"
        logger.info(f"CatalogClient POST {url} quantity={quantity}")

        resp = requests.post(url, json={"quantity": quantity}, timeout=self.timeout)
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    def fetch_product(self, product_id: int) -> CatalogProduct:
        try:
            data = self._get_product(product_id)
        except RequestException as e:
            logger.error(f"Catalog lookup for product {product_id} failed: {e}")
            raise Unavailable("Catalog service unavailable, try again") from e

        if data is None:
            raise ProductNotFound(product_id)
        return CatalogProduct.from_payload(data)

    def fetch_active_product(self, product_id: int) -> CatalogProduct:
        product = self.fetch_product(product_id)
        if not product.is_active:
            raise ProductInactive(product_id)
        return product

    def increment_sales(self, product_id: int, quantity: int) -> None:
        #request errors propagate, the calling task owns the retry policy
        if not self._post_sales(product_id, quantity):
            raise ProductNotFound(product_id)
