# marketplace/services/sales_service.py
from typing import Dict

from kombu.exceptions import OperationalError as BrokerError
from redis.exceptions import RedisError
from requests import RequestException

from marketplace.celery_worker import celery_app
from marketplace.domain.errors import ProductNotFound, Unavailable
from marketplace.services.catalog_client import CatalogClient
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class SalesService:
    """
    Pushes sales counter increments to the catalog after checkout.

    Fire and forget: each product gets its own Celery task with retries and
    backoff. A dispatch failure is logged, the order stays authoritative.
    """

    @staticmethod
    def record_sales(order_reference: str, quantities: Dict[int, int]) -> None:
        for product_id, quantity in quantities.items():
            try:
                increment_product_sales_task.delay(product_id, quantity)
            except (BrokerError, RedisError, OSError) as e:
                logger.error(
                    f"Could not queue sales increment for product {product_id} "
                    f"(order {order_reference}, qty {quantity}): {e}"
                )


@celery_app.task(
    name="marketplace.services.sales_service.increment_product_sales_task",
    autoretry_for=(RequestException, Unavailable),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    max_retries=5,
)
def increment_product_sales_task(product_id: int, quantity: int):
    try:
        CatalogClient().increment_sales(product_id, quantity)
    except ProductNotFound:
        #product removed from the catalog after the order, nothing to count
        logger.warning(f"[SALES] Product {product_id} no longer in catalog, skipping +{quantity}")
        return {"product_id": product_id, "quantity": quantity, "status": "skipped"}

    logger.info(f"[SALES] Product {product_id}: +{quantity}")
    return {"product_id": product_id, "quantity": quantity, "status": "counted"}
