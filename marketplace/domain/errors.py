# marketplace/domain/errors.py
"""
Domain errors of the marketplace core.

Every error carries a ``kind`` from the taxonomy (validation, not_found,
forbidden, conflict, unavailable) and the HTTP status the routers map it to.
Only ``Unavailable`` is marked retryable.
"""


class MarketplaceError(Exception):
    kind = "internal"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    default_message = "Marketplace error"


class ValidationFailed(MarketplaceError, ValueError):
    kind = "validation"
    status_code = 400
    default_message = "Invalid input"


class NotFound(MarketplaceError, LookupError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class ProductNotFound(NotFound):
    default_message = "Product not found"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class ProductInactive(ValidationFailed):
    default_message = "Product is not active"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not active")


class ItemNotInCart(NotFound):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not in the cart")


class EmptyCart(ValidationFailed):
    default_message = "Cart is empty"


class EmptyOrder(ValidationFailed):
    default_message = "Order must contain at least one item"


class OrderNotFound(NotFound):
    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Order {reference} not found")


class Forbidden(MarketplaceError, PermissionError):
    kind = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class Conflict(MarketplaceError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class InvalidTransition(Conflict):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")


class ConcurrencyConflict(Conflict):
    default_message = "Resource was modified by another operation"


class Unavailable(MarketplaceError):
    kind = "unavailable"
    status_code = 503
    retryable = True
    default_message = "Downstream service unavailable"
