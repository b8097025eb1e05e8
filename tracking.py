"""
Order tracking projection.

Maps an order onto the fixed five-step pipeline. Cancelled orders get no
stepper at all. A completed step is dated from the first history row with
the same status; without one it is shown completed but undated.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from schemas import TRACKING_STEPS, Order, OrderStatusHistory

STEP_LABELS = {
    "placed": "Order Placed",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
}


class TrackingStep(BaseModel):
    key: str
    label: str
    completed: bool
    current: bool
    timestamp: Optional[datetime] = None


class OrderTracking(BaseModel):
    order_id: Optional[str] = None
    order_number: str
    status: str
    show_stepper: bool
    current_index: int = -1
    steps: List[TrackingStep] = []


def current_step_index(status: str) -> int:
    for i, key in enumerate(TRACKING_STEPS):
        if key == status:
            return i
    return -1


def build_tracking(order: Order, history: List[OrderStatusHistory]) -> OrderTracking:
    index = current_step_index(order.status)
    if order.status == "cancelled" or index < 0:
        return OrderTracking(order_id=order.id, order_number=order.order_number,
                             status=order.status, show_stepper=False)

    steps = []
    for i, key in enumerate(TRACKING_STEPS):
        completed = i <= index
        timestamp = None
        if completed:
            row = next((h for h in history if h.status == key), None)
            timestamp = row.created_at if row else None
        steps.append(TrackingStep(key=key, label=STEP_LABELS[key], completed=completed,
                                  current=i == index, timestamp=timestamp))
    return OrderTracking(order_id=order.id, order_number=order.order_number, status=order.status,
                         show_stepper=True, current_index=index, steps=steps)
