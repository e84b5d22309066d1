from decimal import Decimal
from unittest.mock import patch

import pytest
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.exc import OperationalError

from marketplace.data.models.order import OrderModel
from marketplace.domain.errors import (
    ConcurrencyConflict,
    EmptyCart,
    ProductInactive,
    ProductNotFound,
    Unavailable,
)
from marketplace.repos.cart_repo import CartRepo
from marketplace.services.cart_service import CartService
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.order_service import OrderService
from marketplace.services.sales_service import SalesService

BUYER = 1


@pytest.fixture()
def carts(db, catalog, locks):
    catalog.put(1, "40.00", seller_id=11)
    catalog.put(2, "60.00", seller_id=12)
    return CartService(db=db, catalog=catalog, lock_service=locks)


@pytest.fixture()
def checkout(db, catalog, locks, sales):
    return CheckoutService(db, catalog, locks, sales)


def _stored(db, buyer_id=BUYER):
    repo = CartRepo(db)
    cart = repo.get_cart_by_buyer(buyer_id)
    return {i.product_id: i.quantity for i in repo.get_cart_items(cart.id)} if cart else {}


def _order_count(db):
    return db.query(OrderModel).count()


def test_checkout_builds_frozen_order_and_clears_cart(db, carts, checkout, sales):
    carts.add_item(BUYER, 1, 1)
    carts.add_item(BUYER, 2, 2)

    order = checkout.checkout(BUYER, payment_method="card", notes="ring twice")

    assert order["order_id"].startswith("ORD-")
    assert order["buyer_id"] == BUYER
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["payment_method"] == "card"
    assert order["notes"] == "ring twice"
    assert order["total_amount"] == Decimal("160.00")
    assert [
        (i["product_id"], i["seller_id"], i["quantity"], i["unit_price"], i["subtotal"])
        for i in order["items"]
    ] == [
        (1, 11, 1, Decimal("40.00"), Decimal("40.00")),
        (2, 12, 2, Decimal("60.00"), Decimal("120.00")),
    ]

    assert _stored(db) == {}
    assert CartRepo(db).get_cart_by_buyer(BUYER) is not None
    assert sales.calls == [(order["order_id"], {1: 1, 2: 2})]


def test_seller_comes_from_catalog_at_checkout(db, carts, checkout, catalog):
    carts.add_item(BUYER, 1, 1)
    #product reassigned after it was put in the cart
    catalog.put(1, "40.00", seller_id=77)

    order = checkout.checkout(BUYER)

    assert order["items"][0]["seller_id"] == 77


def test_price_change_after_checkout_does_not_touch_order(db, carts, checkout, catalog, locks):
    catalog.put(5, "100.00", seller_id=11)
    carts.add_item(BUYER, 5, 2)
    order = checkout.checkout(BUYER)

    catalog.put(5, "150.00", seller_id=11)

    stored = OrderService(db, locks).get_order_for_actor(order["order_id"], "admin", 99)
    assert stored["items"][0]["subtotal"] == Decimal("200.00")
    assert stored["total_amount"] == Decimal("200.00")


def test_empty_cart_changes_nothing(db, checkout, sales):
    with pytest.raises(EmptyCart):
        checkout.checkout(BUYER)

    assert _order_count(db) == 0
    assert sales.calls == []


def test_cleared_cart_is_empty_cart(db, carts, checkout, sales):
    carts.add_item(BUYER, 1, 1)
    carts.clear(BUYER)

    with pytest.raises(EmptyCart):
        checkout.checkout(BUYER)
    assert sales.calls == []


def test_second_checkout_cannot_double_charge(db, carts, checkout):
    carts.add_item(BUYER, 1, 1)
    checkout.checkout(BUYER)

    with pytest.raises(EmptyCart):
        checkout.checkout(BUYER)
    assert _order_count(db) == 1


def test_missing_product_fails_whole_checkout(db, carts, checkout, catalog, sales):
    carts.add_item(BUYER, 1, 1)
    carts.add_item(BUYER, 2, 1)
    del catalog.products[2]

    with pytest.raises(ProductNotFound):
        checkout.checkout(BUYER)

    assert _stored(db) == {1: 1, 2: 1}
    assert _order_count(db) == 0
    assert sales.calls == []


def test_inactive_product_fails_whole_checkout(db, carts, checkout, catalog):
    carts.add_item(BUYER, 1, 1)
    catalog.put(1, "40.00", seller_id=11, is_active=False)

    with pytest.raises(ProductInactive):
        checkout.checkout(BUYER)
    assert _stored(db) == {1: 1}


def test_catalog_outage_leaves_cart(db, carts, checkout, catalog):
    carts.add_item(BUYER, 1, 1)
    catalog.down = True

    with pytest.raises(Unavailable):
        checkout.checkout(BUYER)
    assert _stored(db) == {1: 1}
    assert _order_count(db) == 0


def test_store_failure_on_create_does_not_clear_cart(db, carts, checkout):
    carts.add_item(BUYER, 1, 1)

    with patch.object(
        checkout.orders.repo.db,
        "flush",
        side_effect=OperationalError("INSERT INTO orders", {}, Exception("connection lost")),
    ):
        with pytest.raises(Unavailable):
            checkout.checkout(BUYER)

    assert _stored(db) == {1: 1}
    assert _order_count(db) == 0


def test_concurrent_cart_change_rolls_back_order(db, carts, checkout):
    carts.add_item(BUYER, 1, 1)
    checkout.cart_repo.update_cart_version = lambda **kwargs: 0

    with pytest.raises(ConcurrencyConflict):
        checkout.checkout(BUYER)

    assert _order_count(db) == 0
    assert _stored(db) == {1: 1}


def test_sales_dispatch_failure_does_not_fail_checkout(db, carts, catalog, locks):
    carts.add_item(BUYER, 1, 3)
    checkout = CheckoutService(db, catalog, locks, SalesService())

    with patch(
        "marketplace.services.sales_service.increment_product_sales_task.delay",
        side_effect=BrokerError("broker down"),
    ) as delay:
        order = checkout.checkout(BUYER)

    delay.assert_called_once_with(1, 3)
    assert order["total_amount"] == Decimal("120.00")
    assert _order_count(db) == 1
    assert _stored(db) == {}


def test_order_references_are_unique_and_increasing(db, carts, checkout):
    references = []
    for buyer_id in (1, 2, 3):
        carts.add_item(buyer_id, 1, 1)
        references.append(checkout.checkout(buyer_id)["order_id"])

    assert len(set(references)) == 3
    assert references == sorted(references)
    assert references[0] == "ORD-000001"
