import math
from typing import List, Optional

from pymongo import DESCENDING

from gateway import DataGateway
from schemas import Product


def list_products(gateway: DataGateway, category: Optional[str] = None) -> List[Product]:
    """Approved and available products, newest first."""
    filters = {"approval_status": "approved", "is_available": True}
    if category and category != "all":
        filters["category"] = category
    rows = gateway.select("product", filters, sort=[("created_at", DESCENDING)])
    return [Product(**r) for r in rows]


def get_product(gateway: DataGateway, product_id: str) -> Product:
    """A single product, only when it is approved and available."""
    row = gateway.select_one("product", {"id": product_id, "approval_status": "approved", "is_available": True})
    return Product(**row)


def discount_percentage(product: Product) -> int:
    if product.original_price and product.original_price > product.price:
        return round((product.original_price - product.price) / product.original_price * 100)
    return 0


def truncate2(amount: float) -> float:
    # round first so binary noise (e.g. 0.1 * 3) does not lose a cent
    return math.floor(round(amount * 100, 6)) / 100


def format_price(amount: float) -> str:
    return f"₹{truncate2(amount):.2f}"
