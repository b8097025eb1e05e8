import logging
from typing import Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from errors import InvalidTransition, ValidationError
from gateway import DataGateway
from schemas import ORDER_STATUSES, TRACKING_STEPS, Order, OrderItem, OrderStatusHistory, Product

logger = logging.getLogger(__name__)


def can_transition(current: str, new: str) -> bool:
    """Forward along the pipeline; cancelled from anything before delivered."""
    if current in ("delivered", "cancelled"):
        return False
    if new == "cancelled":
        return True
    if new not in TRACKING_STEPS or current not in TRACKING_STEPS:
        return False
    return TRACKING_STEPS.index(new) > TRACKING_STEPS.index(current)


class OrderService:
    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    def _items_for(self, order_ids: List[str]) -> Dict[str, List[OrderItem]]:
        rows = self.gateway.select("orderitem", {"order_id": order_ids})
        products = {}
        if rows:
            product_ids = list({r["product_id"] for r in rows})
            products = {p["id"]: Product(**p) for p in self.gateway.select("product", {"id": product_ids})}
        by_order: Dict[str, List[OrderItem]] = {}
        for r in rows:
            by_order.setdefault(r["order_id"], []).append(OrderItem(**r, product=products.get(r["product_id"])))
        return by_order

    def list_orders(self, user_id: str) -> List[Order]:
        rows = self.gateway.select("order", {"user_id": user_id}, sort=[("created_at", DESCENDING)])
        items = self._items_for([r["id"] for r in rows]) if rows else {}
        return [Order(**r, items=items.get(r["id"], [])) for r in rows]

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Order:
        filters = {"id": order_id}
        if user_id:
            filters["user_id"] = user_id
        row = self.gateway.select_one("order", filters)
        return Order(**row, items=self._items_for([row["id"]]).get(row["id"], []))

    def get_status_history(self, order_id: str) -> List[OrderStatusHistory]:
        rows = self.gateway.select("orderstatushistory", {"order_id": order_id}, sort=[("created_at", ASCENDING)])
        return [OrderStatusHistory(**r) for r in rows]

    def update_status(self, order_id: str, status: str, notes: Optional[str] = None) -> Order:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")
        order = self.get_order(order_id)
        if not can_transition(order.status, status):
            raise InvalidTransition(f"Cannot move order from {order.status} to {status}")
        row = self.gateway.update("order", {"id": order_id}, {"status": status})
        self.gateway.insert("orderstatushistory", {
            "order_id": order_id,
            "status": status,
            "notes": notes or "Status updated by admin",
        })
        logger.info("Order %s: %s -> %s", order.order_number, order.status, status)
        return Order(**row, items=order.items)
