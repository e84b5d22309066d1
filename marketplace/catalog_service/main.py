# marketplace/catalog_service/main.py
from decimal import Decimal
from threading import Lock

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Catalog Service (dev mock)")

_lock = Lock()

PRODUCTS = {
    1: {"id": 1, "title": "Wedding shoot", "price": 1200.00, "seller_id": 101, "is_active": True, "sales": 0},
    2: {"id": 2, "title": "Portrait session", "price": 150.00, "seller_id": 101, "is_active": True, "sales": 0},
    3: {"id": 3, "title": "Product photography", "price": 40.00, "seller_id": 102, "is_active": True, "sales": 0},
    4: {"id": 4, "title": "Event coverage", "price": 60.00, "seller_id": 102, "is_active": True, "sales": 0},
    5: {"id": 5, "title": "Real estate tour", "price": 300.00, "seller_id": 103, "is_active": False, "sales": 0},
}


class SalesIn(BaseModel):
    quantity: int = Field(..., gt=0)


class PriceIn(BaseModel):
    price: Decimal = Field(..., ge=0)


def _get(product_id: int) -> dict:
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/products/{product_id}")
def get_product(product_id: int):
    return _get(product_id)


@app.post("/products/{product_id}/sales")
def increment_sales(product_id: int, payload: SalesIn):
    with _lock:
        product = _get(product_id)
        product["sales"] += payload.quantity
        return product


@app.put("/products/{product_id}/price")
def set_price(product_id: int, payload: PriceIn):
    with _lock:
        product = _get(product_id)
        product["price"] = float(payload.price)
        return product
