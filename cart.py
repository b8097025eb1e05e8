"""
Cart Manager

Add / update / remove against the user's cart rows. A (user, product) pair
is unique and adding it again overwrites the stored quantity rather than
adding to it. Stock is only checked against the product as the caller last
saw it, never atomically.
"""
import logging
from contextlib import contextmanager
from typing import Callable, List, Optional

from pymongo import DESCENDING

from catalog import truncate2
from database import now_utc
from errors import AuthenticationRequired, OutOfStockError, ValidationError
from gateway import DataGateway
from schemas import CartLine, Product

logger = logging.getLogger(__name__)


def get_total(lines: List[CartLine]) -> float:
    total = sum(line.product.price * line.quantity for line in lines if line.product)
    return truncate2(total)


def can_increment(line: CartLine) -> bool:
    """Whether the + button is enabled, judged by the stock read when the cart loaded."""
    if line.product is None:
        return False
    return line.quantity < line.product.stock_quantity


class CartManager:
    def __init__(self, gateway: DataGateway, on_count_change: Optional[Callable[[str, int], None]] = None):
        self.gateway = gateway
        self.on_count_change = on_count_change
        self.loading = False
        self.updating: Optional[str] = None

    @contextmanager
    def _busy(self, line_id: Optional[str] = None):
        self.loading = True
        self.updating = line_id
        try:
            yield
        finally:
            self.loading = False
            self.updating = None

    def add_to_cart(self, user_id: Optional[str], product: Product, quantity: int = 1) -> CartLine:
        if not user_id:
            raise AuthenticationRequired("Please login to add items to cart")
        if product.stock_quantity == 0 or not product.is_available:
            raise OutOfStockError()
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        with self._busy():
            row = self.gateway.upsert(
                "cartline",
                {"user_id": user_id, "product_id": product.id},
                {"quantity": quantity},
                on_insert={"added_at": now_utc()},
            )
        logger.info("Cart %s: %s x%s", user_id, product.id, quantity)
        self.refresh_count(user_id)
        return CartLine(**row, product=product)

    def get_cart_lines(self, user_id: str) -> List[CartLine]:
        with self._busy():
            rows = self.gateway.select("cartline", {"user_id": user_id}, sort=[("added_at", DESCENDING)])
            product_ids = [r["product_id"] for r in rows]
            products = {p["id"]: Product(**p) for p in self.gateway.select("product", {"id": product_ids})} if rows else {}
        return [CartLine(**r, product=products.get(r["product_id"])) for r in rows]

    def update_quantity(self, cart_line_id: str, new_quantity: int) -> CartLine:
        if new_quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        with self._busy(cart_line_id):
            row = self.gateway.update("cartline", {"id": cart_line_id}, {"quantity": new_quantity})
        if row is None:
            raise ValidationError("Item is no longer in your cart")
        return CartLine(**row)

    def remove_from_cart(self, cart_line_id: str, confirmed: bool = False) -> None:
        if not confirmed:
            raise ValidationError("Removing an item needs confirmation", title="Remove Item")
        with self._busy(cart_line_id):
            self.gateway.delete("cartline", {"id": cart_line_id})

    def clear_cart(self, user_id: str) -> int:
        return self.gateway.delete("cartline", {"user_id": user_id})

    def count(self, user_id: str) -> int:
        return self.gateway.count("cartline", {"user_id": user_id})

    def refresh_count(self, user_id: str) -> int:
        n = self.count(user_id)
        if self.on_count_change:
            self.on_count_change(user_id, n)
        return n
