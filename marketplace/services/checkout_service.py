# marketplace/services/checkout_service.py
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from sqlalchemy.orm import Session

from marketplace.data.models.cart_item import CartItemModel
from marketplace.domain.errors import ConcurrencyConflict, EmptyCart
from marketplace.repos.cart_repo import CartRepo
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.lock_service import LockService, cart_key
from marketplace.services.order_service import CENT, OrderService, order_to_dict
from marketplace.services.sales_service import SalesService
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Converts a buyer's cart into a single order.

    1. Reads the cart (EmptyCart when nothing is in it)
    2. Re-resolves every entry in the catalog, any missing or inactive
       product fails the whole checkout and leaves the cart as it was
    3. Freezes unit price, seller and subtotal per line
    4. Stages the order and clears the cart in one transaction, guarded by
       the cart version, so the cart is only emptied if the order exists
    5. Queues the sales counter increments (best effort)
    """

    def __init__(
        self,
        db: Session,
        catalog: CatalogClient,
        lock_service: LockService,
        sales: SalesService,
    ):
        self.cart_repo = CartRepo(db)
        self.orders = OrderService(db, lock_service)
        self.catalog = catalog
        self.lock_service = lock_service
        self.sales = sales

    def checkout(
        self,
        buyer_id: int,
        shipping_address: Mapping[str, Any] | None = None,
        payment_method: str | None = None,
        notes: str | None = None,
    ) -> Dict[str, Any]:
        with self.lock_service.hold(cart_key(buyer_id)):
            cart = self.cart_repo.get_cart_by_buyer(buyer_id)
            entries = self.cart_repo.get_cart_items(cart.id) if cart else []

            if not entries:
                raise EmptyCart()

            logger.info(f"Checkout for buyer {buyer_id}: {len(entries)} cart entries")
            line_items = self.build_line_items(entries)

            order = self.orders.create_order(
                buyer_id=buyer_id,
                items=line_items,
                payment_method=payment_method,
                shipping_address=shipping_address,
                notes=notes,
                commit=False,
            )

            #cart is cleared in the same transaction that creates the order
            self.cart_repo.clear_cart_items(cart.id)
            rowcount = self.cart_repo.update_cart_version(
                cart_id=cart.id,
                old_version=cart.version,
                new_data={
                    "version": cart.version + 1,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
            if rowcount == 0:
                self.cart_repo.rollback()
                raise ConcurrencyConflict("Cart changed during checkout, try again")

            self.cart_repo.commit()

        logger.info(
            f"Checkout complete: order {order.reference}, buyer {buyer_id}, "
            f"total {order.total_amount}"
        )

        self.sales.record_sales(order.reference, self.sold_quantities(line_items))
        return order_to_dict(order)

    def build_line_items(self, entries: List[CartItemModel]) -> List[Dict[str, Any]]:
        line_items = []
        for entry in entries:
            #current price and seller, raises ProductNotFound / ProductInactive / Unavailable
            product = self.catalog.fetch_active_product(entry.product_id)
            unit_price = product.price.quantize(CENT)

            line_items.append(
                {
                    "product_id": entry.product_id,
                    "seller_id": product.seller_id,
                    "quantity": entry.quantity,
                    "unit_price": unit_price,
                    "subtotal": (unit_price * entry.quantity).quantize(CENT),
                }
            )
        return line_items

    @staticmethod
    def sold_quantities(line_items: List[Mapping[str, Any]]) -> Dict[int, int]:
        quantities: Dict[int, int] = OrderedDict()
        for item in line_items:
            quantities[item["product_id"]] = quantities.get(item["product_id"], 0) + item["quantity"]
        return quantities
