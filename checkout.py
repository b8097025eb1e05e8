"""
Checkout

`validate_address` runs purely locally. `CheckoutOrchestrator.place_order`
turns the user's cart into an order with a fixed sequence of gateway calls:

    read cart -> order number -> order -> order items -> history -> clear cart

The sequence is not transactional. When the order items cannot be written
any items already written and the freshly inserted order are deleted again;
if that delete fails too the order is left behind and the failure is only
logged.

`CheckoutSession` is the forward-only state machine a client walks through:

    CART_LOADING -> ADDRESS_ENTRY -> (COUPON_APPLY) -> PLACING_ORDER -> ORDER_PLACED | ORDER_FAILED
"""
import logging
import re
from enum import Enum
from typing import List, Optional

from cart import CartManager, get_total
from coupons import AppliedCoupon, CouponValidator
from errors import (AuthenticationRequired, CommerceError, EmptyCartError, InvalidTransition,
                    RemoteCallError, ValidationError)
from gateway import DataGateway
from schemas import CartLine, CouponValidation, Order, OrderItem, PAYMENT_METHODS, ShippingAddress

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"[0-9]{6}")


def validate_address(address: ShippingAddress) -> bool:
    """Raise ValidationError for the first unmet condition."""
    if not address.full_name.strip():
        raise ValidationError("Please enter full name")
    if not address.phone.strip() or len(address.phone) < 10:
        raise ValidationError("Please enter valid phone number")
    if not address.address.strip():
        raise ValidationError("Please enter address")
    if not address.city.strip():
        raise ValidationError("Please enter city")
    if not address.state.strip():
        raise ValidationError("Please enter state")
    if not PINCODE_RE.fullmatch(address.pincode):
        raise ValidationError("Please enter valid 6-digit PIN code (only numbers)")
    return True


class CheckoutOrchestrator:
    def __init__(self, gateway: DataGateway, cart: Optional[CartManager] = None):
        self.gateway = gateway
        self.cart = cart or CartManager(gateway)

    def place_order(self, user_id: Optional[str], address: ShippingAddress, payment_method: str,
                    coupon_code: Optional[str] = None, discount_amount: float = 0.0) -> Order:
        if not user_id:
            raise AuthenticationRequired("Please login to place an order")
        if not payment_method:
            raise ValidationError("Please select a payment method")
        validate_address(address)
        if discount_amount and discount_amount < 0:
            raise ValidationError("Discount cannot be negative")

        lines = self.cart.get_cart_lines(user_id)
        if not lines:
            raise EmptyCartError()
        for line in lines:
            if line.product is None:
                raise RemoteCallError(f"Product {line.product_id} is no longer available")

        subtotal = sum(line.product.price * line.quantity for line in lines)
        discount = min(float(discount_amount or 0), subtotal) if coupon_code else 0.0
        total = round(subtotal - discount, 2)

        order_number = self.gateway.rpc("generate_order_number")
        order_row = self.gateway.insert("order", {
            "user_id": user_id,
            "order_number": order_number,
            "total_amount": total,
            "status": "placed",
            "payment_status": "pending",
            "payment_method": payment_method,
            "shipping_address": address.model_dump(),
            "coupon_code": coupon_code.upper() if coupon_code else None,
            "discount_amount": round(discount, 2),
        })
        order_id = order_row["id"]

        try:
            item_rows = self.gateway.insert_many("orderitem", [
                {
                    "order_id": order_id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "price_at_purchase": line.product.price,
                }
                for line in lines
            ])
        except RemoteCallError:
            self._rollback(order_id)
            raise

        try:
            self.gateway.insert("orderstatushistory", {
                "order_id": order_id,
                "status": "placed",
                "notes": "Order placed successfully",
            })
        except RemoteCallError as e:
            logger.error("Order %s placed without a history row: %s", order_number, e.message)

        if coupon_code:
            try:
                self.gateway.rpc("increment_coupon_usage", code=coupon_code)
            except RemoteCallError as e:
                logger.error("Could not count usage of coupon %s: %s", coupon_code, e.message)

        try:
            self.cart.clear_cart(user_id)
        except RemoteCallError as e:
            logger.error("Cart of %s not cleared after order %s: %s", user_id, order_number, e.message)

        logger.info("Order %s placed by %s for %.2f", order_number, user_id, total)
        return Order(**order_row, items=[OrderItem(**r) for r in item_rows])

    def _rollback(self, order_id: str) -> None:
        # rows written before a failing insert_many stay behind
        try:
            self.gateway.delete("orderitem", {"order_id": order_id})
            self.gateway.delete("order", {"id": order_id})
        except RemoteCallError as e:
            logger.error("Compensating delete of order %s failed: %s", order_id, e.message)


class CheckoutState(str, Enum):
    CART_LOADING = "cart_loading"
    ADDRESS_ENTRY = "address_entry"
    COUPON_APPLY = "coupon_apply"
    PLACING_ORDER = "placing_order"
    ORDER_PLACED = "order_placed"
    ORDER_FAILED = "order_failed"


_EDITABLE = (CheckoutState.ADDRESS_ENTRY, CheckoutState.COUPON_APPLY)


class CheckoutSession:
    def __init__(self, user_id: str, orchestrator: CheckoutOrchestrator, coupons: CouponValidator):
        self.user_id = user_id
        self.orchestrator = orchestrator
        self.coupons = coupons
        self.state = CheckoutState.CART_LOADING
        self.cart_lines: List[CartLine] = []
        self.coupon = AppliedCoupon()
        self.placing = False
        self.order: Optional[Order] = None
        self.error: Optional[str] = None

    def _require(self, *states: CheckoutState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Checkout is {self.state.value}")

    @property
    def subtotal(self) -> float:
        return get_total(self.cart_lines)

    @property
    def discount_amount(self) -> float:
        return self.coupon.discount_amount

    @property
    def final_total(self) -> float:
        return round(self.subtotal - self.discount_amount, 2)

    def load_cart(self) -> List[CartLine]:
        self._require(CheckoutState.CART_LOADING)
        self.cart_lines = self.orchestrator.cart.get_cart_lines(self.user_id)
        self.state = CheckoutState.ADDRESS_ENTRY
        return self.cart_lines

    def apply_coupon(self, code: str) -> CouponValidation:
        self._require(*_EDITABLE)
        validation = self.coupons.validate(code, self.subtotal)
        self.coupon.apply(validation)
        self.state = CheckoutState.COUPON_APPLY
        return validation

    def remove_coupon(self) -> None:
        self._require(*_EDITABLE)
        self.coupon.remove()

    def place_order(self, address: ShippingAddress, payment_method: str = "COD") -> Order:
        self._require(*_EDITABLE)
        if not self.cart_lines:
            raise EmptyCartError()
        validate_address(address)
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError("Please select a payment method")

        self.state = CheckoutState.PLACING_ORDER
        self.placing = True
        try:
            self.order = self.orchestrator.place_order(
                self.user_id, address, payment_method,
                coupon_code=self.coupon.code,
                discount_amount=self.coupon.discount_amount,
            )
            self.state = CheckoutState.ORDER_PLACED
            return self.order
        except CommerceError as e:
            self.state = CheckoutState.ORDER_FAILED
            self.error = e.message
            raise
        finally:
            self.placing = False
