#import all models so SQLAlchemy registers them in Base.metadata

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.data.models.order import OrderModel
from marketplace.data.models.order_item import OrderItemModel

__all__ = ["CartModel", "CartItemModel", "OrderModel", "OrderItemModel"]
